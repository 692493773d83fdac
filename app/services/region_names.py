from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass

METRO_REGION_ALIASES = {
    "서울": "서울특별시",
    "부산": "부산광역시",
    "대구": "대구광역시",
    "인천": "인천광역시",
    "광주": "광주광역시",
    "대전": "대전광역시",
    "울산": "울산광역시",
    "세종": "세종특별자치시",
    "경기": "경기도",
    "경기도": "경기도",
    "강원": "강원특별자치도",
    "강원도": "강원특별자치도",
    "충북": "충청북도",
    "충남": "충청남도",
    "전북": "전북특별자치도",
    "전라북도": "전북특별자치도",
    "전남": "전라남도",
    "경북": "경상북도",
    "경남": "경상남도",
    "제주": "제주특별자치도",
    "제주도": "제주특별자치도",
}

_REGION_SUFFIX_RE = re.compile(r"특별시|광역시|특별자치시|특별자치도|도$")
_METRO_TITLE_RE = (
    (re.compile(r"(시)장$"), r"\1"),
    (re.compile(r"(도)지사$"), r"\1"),
)
_BASIC_TITLE_SUFFIXES = ("청장", "시장", "군수")
_PARENS_RE = re.compile(r"\s*\(.*?\)")
_ACTING_NAME_RE = re.compile(r"\s*\(대행\)")
_WS_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class RegionNameNormalization:
    raw: str
    canonical: str
    was_aliased: bool


def normalize_region_input(raw_value: str | None) -> RegionNameNormalization:
    raw = (raw_value or "").strip()
    text = unicodedata.normalize("NFC", _WS_RE.sub("", raw.replace("　", " ")))
    canonical = METRO_REGION_ALIASES.get(text, text)
    return RegionNameNormalization(raw=raw, canonical=canonical, was_aliased=canonical != text)


def normalize_region_name(raw_value: str | None) -> str:
    return normalize_region_input(raw_value).canonical


def strip_region_suffix(name: str | None) -> str:
    """서울특별시 -> 서울, 경기도 -> 경기, 강원특별자치도 -> 강원."""
    return _REGION_SUFFIX_RE.sub("", (name or "").strip())


def metro_region_from_position(position: str | None) -> str:
    """서울특별시장 -> 서울특별시, 경기도지사 -> 경기도."""
    text = (position or "").strip()
    for pattern, repl in _METRO_TITLE_RE:
        text = pattern.sub(repl, text)
    return text


def is_metropolitan_region(region: str | None) -> bool:
    text = (region or "").strip()
    if not text:
        return False
    return "특별시" in text or "광역시" in text or "특별자치" in text or text.endswith("도")


def looks_like_region_header(text: str | None) -> bool:
    value = (text or "").strip()
    if not value:
        return False
    return "특별시" in value or "광역시" in value or "특별자치" in value or "도" in value


def strip_office_title(position: str | None) -> str:
    """종로구청장 -> 종로구, 수원시장 -> 수원, 양평군수 -> 양평."""
    text = (position or "").strip()
    for suffix in _BASIC_TITLE_SUFFIXES:
        if text.endswith(suffix):
            text = text[: -len(suffix)]
    return text


def strip_basic_unit(name: str | None) -> str:
    """수원시 -> 수원, 양평군 -> 양평, 종로구 -> 종로."""
    text = (name or "").strip()
    if len(text) > 1 and text[-1] in "시군구":
        return text[:-1]
    return text


def strip_acting_marker(name: str | None) -> str:
    return _ACTING_NAME_RE.sub("", name or "").strip()


def clean_person_name(name: str | None) -> str:
    """Reduce a roster display name to the person's own name.

    ``"홍길동 → 김철수(대행)"`` becomes ``"김철수"``.
    """
    text = (name or "").strip()
    if "→" in text:
        text = text.rsplit("→", 1)[1]
    return _PARENS_RE.sub("", text).strip()
