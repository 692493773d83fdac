import asyncio

from app.services.acting_matcher import (
    ActingOfficialMatcher,
    annotate_predecessors,
    find_predecessor,
    format_acting_name,
)
from app.services.roster_models import OfficialRecord, RosterType, WinnerRecord


def _metro_roster() -> list[OfficialRecord]:
    return [
        OfficialRecord(region="서울특별시", position="서울특별시장", name="오세훈", party="국민의힘"),
        OfficialRecord(region="경기도", position="경기도지사", name="김철수", party="무소속", notes="권한대행"),
        OfficialRecord(region="부산광역시", position="부산광역시장", name="박형준", party="국민의힘"),
    ]


def _winner(name, sd_name, *, wiw="", sgg="", elected=True, typecode="3") -> WinnerRecord:  # noqa: ANN001
    return WinnerRecord(
        name=name,
        sd_name=sd_name,
        sg_typecode=typecode,
        sg_id="20220601",
        wiw_name=wiw,
        sgg_name=sgg,
        elected=elected,
    )


class FakeWinnerSource:
    def __init__(self, winners=None, error: Exception | None = None):  # noqa: ANN001
        self.winners = winners or []
        self.error = error
        self.calls: list[str] = []

    async def winners_for(self, type_code: str):
        self.calls.append(type_code)
        if self.error is not None:
            raise self.error
        return self.winners


def test_acting_official_gets_predecessor_from_short_region_name():
    roster = _metro_roster()
    winners = [_winner("오세훈", "서울"), _winner("김동연", "경기")]

    result = annotate_predecessors(roster, winners, is_basic=False)

    assert result[1].name == "김동연 → 김철수(대행)"
    assert result[1].previous_governor == "김동연"
    assert result[1].status == "권한대행"


def test_non_acting_officials_are_returned_unchanged():
    roster = _metro_roster()
    result = annotate_predecessors(roster, [_winner("김동연", "경기도")], is_basic=False)

    assert len(result) == len(roster)
    assert result[0] is roster[0]
    assert result[2] is roster[2]


def test_empty_or_malformed_winners_keep_roster_as_is():
    roster = _metro_roster()

    for winners in (None, [], [None, "garbage", 42], [{"name": "", "sdName": "경기도"}]):
        result = annotate_predecessors(roster, winners, is_basic=False)
        assert len(result) == len(roster)
        assert [row.to_dict() for row in result] == [row.to_dict() for row in roster]


def test_unelected_winners_are_ignored():
    roster = _metro_roster()
    result = annotate_predecessors(roster, [_winner("낙선자", "경기도", elected=False)], is_basic=False)
    assert result[1].previous_governor is None


def test_dict_winner_items_are_accepted():
    roster = _metro_roster()
    result = annotate_predecessors(roster, [{"name": "김동연", "sdName": "경기도", "sgTypecode": "3"}], is_basic=False)
    assert result[1].previous_governor == "김동연"


def test_metropolitan_exact_match_beats_containment():
    official = OfficialRecord(region="경상북도", position="경상북도지사", name="대행자", notes="권한대행")
    winners = [_winner("가", "경상북도청"), _winner("나", "경상북도")]
    assert find_predecessor(official, winners, is_basic=False).name == "나"


def test_basic_match_prefers_same_metropolitan_region():
    official = OfficialRecord(region="부산광역시", position="중구청장", name="대행자(대행)")
    winners = [
        _winner("서울중구청장", "서울특별시", wiw="중구", sgg="중구", typecode="4"),
        _winner("부산중구청장", "부산광역시", wiw="중구", sgg="중구", typecode="4"),
    ]

    winner = find_predecessor(official, winners, is_basic=True)

    assert winner.name == "부산중구청장"


def test_basic_match_ties_go_to_first_winner():
    official = OfficialRecord(region="경기도", position="수원시장", name="대행자", notes="직무대행")
    winners = [
        _winner("첫번째", "경기도", wiw="수원시장안구", typecode="4"),
        _winner("두번째", "경기도", wiw="수원시권선구", typecode="4"),
    ]
    assert find_predecessor(official, winners, is_basic=True).name == "첫번째"


def test_basic_match_city_level_exact_beats_containment():
    official = OfficialRecord(region="경기도", position="수원시장", name="대행자", notes="권한대행")
    winners = [
        _winner("구청장", "경기도", wiw="수원시장안구", typecode="4"),
        _winner("시장", "경기도", wiw="수원시", sgg="수원시", typecode="4"),
    ]
    assert find_predecessor(official, winners, is_basic=True).name == "시장"


def test_basic_match_county_level_exact_beats_containment():
    official = OfficialRecord(region="경기도", position="양평군수", name="대행자", notes="권한대행")
    winners = [
        _winner("다른이", "경기도", sgg="양평군가선거구", typecode="4"),
        _winner("군수", "경기도", wiw="양평군", typecode="4"),
    ]
    assert find_predecessor(official, winners, is_basic=True).name == "군수"


def test_basic_match_without_candidate_leaves_official():
    roster = [OfficialRecord(region="경기도", position="양평군수", name="대행자", notes="권한대행")]
    result = annotate_predecessors(roster, [_winner("김", "경기도", wiw="가평군", typecode="4")], is_basic=True)
    assert result[0] is roster[0]


def test_format_acting_name_strips_existing_marker():
    assert format_acting_name("홍길동", "김철수(대행)") == "홍길동 → 김철수(대행)"


def test_reconcile_skips_winner_lookup_when_nobody_is_acting():
    roster = [OfficialRecord(region="서울특별시", position="서울특별시장", name="오세훈")]
    source = FakeWinnerSource()

    result = asyncio.run(ActingOfficialMatcher(source).reconcile(roster, RosterType.METROPOLITAN))

    assert result == roster
    assert source.calls == []


def test_reconcile_uses_typecode_for_roster_type():
    source = FakeWinnerSource([_winner("김동연", "경기도")])
    result = asyncio.run(ActingOfficialMatcher(source).reconcile(_metro_roster(), RosterType.METROPOLITAN))

    assert source.calls == ["3"]
    assert result[1].previous_governor == "김동연"


def test_reconcile_returns_original_roster_on_lookup_failure():
    roster = _metro_roster()
    source = FakeWinnerSource(error=RuntimeError("upstream exploded"))

    result = asyncio.run(ActingOfficialMatcher(source).reconcile(roster, RosterType.BASIC))

    assert source.calls == ["4"]
    assert result == roster
