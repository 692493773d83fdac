from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    data_go_kr_key: str | None = None
    database_url: str | None = None
    internal_job_token: str | None = None
    app_env: str = "dev"
    log_level: str = "INFO"

    wiki_metropolitan_url: str = "https://ko.wikipedia.org/wiki/광역지방자치단체장"
    wiki_basic_url: str = "https://ko.wikipedia.org/wiki/기초지방자치단체장"
    wiki_table_selector: str = "table.wikitable"
    wiki_user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/120.0.0.0 Safari/537.36"
    )
    wiki_navigation_timeout_sec: float = 30.0

    data_go_winner_endpoint_url: str = "http://apis.data.go.kr/9760000/WinnerInfoInqireService2/getWinnerInfoInqire"
    data_go_candidate_search_endpoint_url: str = "https://apis.data.go.kr/9760000/CndaSrchService/getCndaSrchInqire"
    data_go_pledge_endpoint_url: str = (
        "http://apis.data.go.kr/9760000/ElecPrmsInfoInqireService/getCnddtElecPrmsInfoInqire"
    )
    data_go_timeout_sec: float = 8.0
    data_go_max_retries: int = 2
    data_go_requests_per_sec: float = 5.0

    winner_sg_id: str = "20220601"
    winner_page_size: int = 100
    winner_max_pages: int = 10
    winner_page_delay_sec: float = 0.3

    candidate_search_num_of_rows: int = 50
    pledge_cache_ttl_days: int = 7

    scheduler_enabled: bool = True
    scheduler_timezone: str = "Asia/Seoul"
    metropolitan_refresh_time: str = "04:00"
    basic_refresh_time: str = "04:10"
    winner_cache_warmup: bool = True

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
