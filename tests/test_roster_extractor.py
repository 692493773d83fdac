from app.services.roster_extractor import (
    BASIC_TABLE_LAYOUT,
    UNCLASSIFIED_REGION,
    BasicRosterExtractor,
    MetropolitanRosterExtractor,
    TableRegionLayout,
    extractor_for,
)
from app.services.roster_models import DEFAULT_INAUGURATION_DATE, DEFAULT_PARTY, RosterType
from app.services.table_scraper import ScrapedRow, extract_table_rows

METRO_ROWS = [
    ("서울특별시장", "국민의힘", "오세훈"),
    ("부산광역시장", "국민의힘", "박형준"),
    ("대구광역시장", "국민의힘", "홍준표"),
    ("인천광역시장", "국민의힘", "유정복"),
    ("광주광역시장", "더불어민주당", "강기정"),
    ("대전광역시장", "국민의힘", "이장우"),
    ("울산광역시장", "국민의힘", "김두겸"),
    ("세종특별자치시장", "국민의힘", "최민호"),
    ("경기도지사", "더불어민주당", "김동연"),
    ("강원특별자치도지사", "국민의힘", "김진태"),
    ("충청북도지사", "국민의힘", "김영환"),
    ("충청남도지사", "국민의힘", "김태흠"),
    ("전북특별자치도지사", "더불어민주당", "김관영"),
    ("전라남도지사", "더불어민주당", "김영록"),
    ("경상북도지사", "국민의힘", "이철우"),
    ("경상남도지사", "국민의힘", "박완수"),
    ("제주특별자치도지사", "더불어민주당", "오영훈"),
]


def _row(*cells: str) -> ScrapedRow:
    return ScrapedRow(cells=tuple(cells))


def _header() -> ScrapedRow:
    return ScrapedRow(cells=(), header_cells=5)


def _metro_html(extra_rows: str = "") -> str:
    body = "".join(
        f"<tr><td>{position}</td><td></td><td>{party}</td><td>{name}</td><td></td></tr>"
        for position, party, name in METRO_ROWS
    )
    return (
        "<table class='wikitable'><tr><th>직위</th><th colspan='2'>정당</th><th>이름</th><th>비고</th></tr>"
        f"{body}{extra_rows}</table>"
    )


def test_metropolitan_extractor_reads_all_seventeen_offices():
    tables = extract_table_rows(_metro_html())
    result = MetropolitanRosterExtractor().extract(tables)

    assert len(result.officials) == 17
    first = result.officials[0]
    assert first.region == "서울특별시"
    assert first.position == "서울특별시장"
    assert first.name == "오세훈"
    assert first.party == "국민의힘"
    assert first.inauguration_date == DEFAULT_INAUGURATION_DATE
    assert result.officials[8].region == "경기도"
    assert result.to_summary()["official_count"] == 17


def test_metropolitan_extractor_drops_rows_with_invalid_region():
    html = _metro_html("<tr><td>대통령</td><td></td><td>무소속</td><td>누군가</td><td></td></tr>")
    result = MetropolitanRosterExtractor().extract(extract_table_rows(html))

    assert len(result.officials) == 17
    dropped = [row for row in result.diagnostics if row.get("reason") == "invalid_metropolitan_region"]
    assert len(dropped) == 1
    assert dropped[0]["position"] == "대통령"
    assert result.to_summary()["dropped_count"] == 1


def test_metropolitan_extractor_skips_short_and_header_rows():
    table = [
        _header(),
        _row("서울특별시장", "", "국민의힘"),
        _row("서울특별시장", "", "", "오세훈", ""),
    ]
    result = MetropolitanRosterExtractor().extract([table])

    assert [row.name for row in result.officials] == ["오세훈"]
    assert result.officials[0].party == DEFAULT_PARTY


def test_metropolitan_acting_status_comes_from_notes():
    table = [_row("부산광역시장", "", "국민의힘", "이성권", "권한대행")]
    official = MetropolitanRosterExtractor().extract([table]).officials[0]
    assert official.status == "권한대행"
    assert official.is_acting


def test_basic_extractor_assigns_region_by_table_order():
    tables = [
        [_header(), _row("종로구청장", "", "국민의힘", "정문헌", "")],
        [_row("중구청장", "", "국민의힘", "최진봉", "")],
    ]
    result = BasicRosterExtractor().extract(tables)

    assert [(row.region, row.position) for row in result.officials] == [
        ("서울특별시", "종로구청장"),
        ("부산광역시", "중구청장"),
    ]


def test_basic_extractor_section_header_overrides_region():
    table = [
        _row("수원시장", "", "더불어민주당", "이재준", ""),
        _row("강원특별자치도"),
        _row("춘천시장", "", "국민의힘", "육동한", ""),
    ]
    layout = TableRegionLayout(version="test", regions=("경기도",))
    result = BasicRosterExtractor(layout).extract([table])

    assert [row.region for row in result.officials] == ["경기도", "강원특별자치도"]


def test_basic_extractor_skips_incomplete_rows():
    table = [
        _row("수원시장", "", "더불어민주당"),
        _row("", "", "무소속", "이름만", ""),
        _row("용인시장", "", "국민의힘", "", ""),
        _row("성남시장", "", "국민의힘", "신상진", ""),
    ]
    result = BasicRosterExtractor(TableRegionLayout(version="test", regions=("경기도",))).extract([table])
    assert [row.name for row in result.officials] == ["신상진"]
    assert result.to_summary()["dropped_count"] == 2


def test_basic_extractor_missing_table_keeps_other_regions():
    # only two tables on the page: later regions are simply absent
    tables = [
        [_row("종로구청장", "", "국민의힘", "정문헌", "")],
        [],
    ]
    result = BasicRosterExtractor().extract(tables)

    assert len(result.officials) == 1
    assert result.diagnostics[1]["data_count"] == 0


def test_basic_extractor_uses_fallback_region_past_layout():
    tables = [[] for _ in range(len(BASIC_TABLE_LAYOUT.regions))]
    tables.append([_row("어딘가구청장", "", "무소속", "홍길동", "")])
    result = BasicRosterExtractor().extract(tables)

    assert result.officials[0].region == UNCLASSIFIED_REGION


def test_basic_layout_has_no_table_for_sejong():
    assert "세종특별자치시" not in BASIC_TABLE_LAYOUT.regions
    assert BASIC_TABLE_LAYOUT.skipped_regions == ("세종특별자치시",)
    assert len(BASIC_TABLE_LAYOUT.regions) == 15


def test_extractor_for_roster_type():
    assert isinstance(extractor_for(RosterType.METROPOLITAN), MetropolitanRosterExtractor)
    assert isinstance(extractor_for(RosterType.BASIC), BasicRosterExtractor)
