from __future__ import annotations

import asyncio
import json
import logging
import time
import xml.etree.ElementTree as ET
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator

import httpx

from app.services.errors import MalformedSource, SourceUnavailable

logger = logging.getLogger(__name__)

_OK_RESULT_CODES = {"00", "INFO-00"}
_NO_DATA_RESULT_CODES = {"03", "INFO-03"}
_RETRYABLE_STATUS = {408, 429}


def _norm_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


class DataGoResultError(SourceUnavailable):
    def __init__(self, result_code: str, result_msg: str | None, *, source: str | None = None):
        super().__init__(f"data.go response error: {result_code} {result_msg or ''}".strip(), source=source)
        self.result_code = result_code


def _check_result_code(result_code: str | None, result_msg: str | None, source: str | None) -> bool:
    """Return False when upstream reports "no data", raise on any other error code."""
    if not result_code or result_code in _OK_RESULT_CODES:
        return True
    if result_code in _NO_DATA_RESULT_CODES:
        return False
    raise DataGoResultError(result_code, result_msg, source=source)


def extract_data_go_items(payload: Any, *, source: str | None = None) -> list[dict[str, Any]]:
    """Normalize a data.go.kr JSON envelope into a list of item dicts.

    ``response.body.items.item`` may be a single object, a list, or missing
    entirely; all three shapes come back as a list.
    """
    if isinstance(payload, list):
        return [x for x in payload if isinstance(x, dict)]
    if not isinstance(payload, dict):
        raise MalformedSource(f"unexpected payload type: {type(payload).__name__}", source=source)

    response = payload.get("response")
    header = response.get("header", {}) if isinstance(response, dict) else {}
    if isinstance(header, dict):
        has_data = _check_result_code(
            _norm_text(header.get("resultCode")),
            _norm_text(header.get("resultMsg")),
            source,
        )
        if not has_data:
            return []

    cur: Any = payload
    for key in ("response", "body", "items"):
        if isinstance(cur, dict) and key in cur:
            cur = cur[key]
    if isinstance(cur, dict) and "item" in cur:
        cur = cur["item"]
    if isinstance(cur, list):
        return [x for x in cur if isinstance(x, dict)]
    if isinstance(cur, dict) and cur and cur is not payload:
        return [cur]
    return []


def parse_data_go_items(raw_text: str, *, source: str | None = None) -> list[dict[str, Any]]:
    text = raw_text.lstrip()
    if not text:
        raise MalformedSource("empty response body", source=source)
    if text.startswith("{") or text.startswith("["):
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise MalformedSource(f"invalid json: {exc}", source=source) from exc
        return extract_data_go_items(payload, source=source)
    return _parse_xml_items(text, source=source)


def _parse_xml_items(raw_text: str, *, source: str | None = None) -> list[dict[str, Any]]:
    # data.go.kr falls back to XML for gateway errors even when JSON was requested.
    try:
        root = ET.fromstring(raw_text)
    except ET.ParseError as exc:
        raise MalformedSource(f"invalid xml: {exc}", source=source) from exc

    result_code = _norm_text(root.findtext(".//header/resultCode")) or _norm_text(root.findtext(".//resultCode"))
    result_msg = _norm_text(root.findtext(".//header/resultMsg")) or _norm_text(root.findtext(".//resultMsg"))
    auth_msg = _norm_text(root.findtext(".//returnAuthMsg"))
    if auth_msg and not result_code:
        raise DataGoResultError("AUTH", auth_msg, source=source)
    if not _check_result_code(result_code, result_msg, source):
        return []

    items: list[dict[str, Any]] = []
    for elem in root.findall(".//item"):
        row: dict[str, Any] = {}
        for child in list(elem):
            if child.text is not None:
                row[child.tag] = child.text.strip()
        if row:
            items.append(row)
    return items


@dataclass(frozen=True)
class SourceFetcherConfig:
    timeout_sec: float = 8.0
    navigation_timeout_sec: float = 30.0
    max_retries: int = 2
    requests_per_sec: float = 5.0
    user_agent: str = "CivicRoster/0.1"


class SourceFetcher:
    def __init__(
        self,
        config: SourceFetcherConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self._transport = transport
        self._rate_lock = asyncio.Lock()
        self._next_allowed_at = 0.0

    @asynccontextmanager
    async def _client(self) -> AsyncIterator[httpx.AsyncClient]:
        async with httpx.AsyncClient(
            timeout=self.config.timeout_sec,
            transport=self._transport,
            headers={"User-Agent": self.config.user_agent},
            follow_redirects=True,
        ) as client:
            yield client

    async def fetch_document(self, url: str) -> str:
        """Fetch an HTML page within a hard wall-clock limit.

        The client is scoped to this call, so the connection pool is released
        on every exit path, including the timeout.
        """
        try:
            async with asyncio.timeout(self.config.navigation_timeout_sec):
                async with self._client() as client:
                    response = await client.get(url)
        except TimeoutError as exc:
            raise SourceUnavailable(
                f"navigation timed out after {self.config.navigation_timeout_sec}s", source=url
            ) from exc
        except httpx.HTTPError as exc:
            raise SourceUnavailable(f"{exc.__class__.__name__}: {exc}", source=url) from exc

        if response.status_code >= 400:
            raise SourceUnavailable(f"http error {response.status_code}", source=url)
        return response.text

    async def fetch_json(self, url: str, params: dict[str, str] | None = None) -> Any:
        raw_text = await self._get_text_with_retry(url, params or {})
        try:
            return json.loads(raw_text)
        except json.JSONDecodeError as exc:
            raise MalformedSource(f"invalid json: {raw_text[:200]}", source=url) from exc

    async def fetch_items(self, url: str, params: dict[str, str] | None = None) -> list[dict[str, Any]]:
        raw_text = await self._get_text_with_retry(url, params or {})
        return parse_data_go_items(raw_text, source=url)

    async def _get_text_with_retry(self, url: str, params: dict[str, str]) -> str:
        attempts = max(1, self.config.max_retries + 1)
        last_exc: Exception | None = None
        for attempt in range(attempts):
            try:
                return await self._get_text_once(url, params)
            except SourceUnavailable as exc:
                last_exc = exc
                if attempt + 1 >= attempts or not self._is_retryable(exc):
                    break
                delay = min(2.0, 0.35 * (2**attempt))
                logger.info("source_fetch_retry url=%s attempt=%s delay=%.2f error=%s", url, attempt + 1, delay, exc)
                await asyncio.sleep(delay)
        assert last_exc is not None
        raise last_exc

    @staticmethod
    def _is_retryable(exc: Exception) -> bool:
        if isinstance(exc, DataGoResultError):
            return False
        cause = exc.__cause__
        if isinstance(cause, (httpx.TimeoutException, httpx.TransportError)):
            return True
        msg = str(exc).lower()
        if "http error 5" in msg:
            return True
        return any(f"http error {status}" in msg for status in _RETRYABLE_STATUS)

    async def _get_text_once(self, url: str, params: dict[str, str]) -> str:
        await self._wait_for_rate_limit()
        try:
            async with self._client() as client:
                response = await client.get(url, params=params)
        except httpx.HTTPError as exc:
            raise SourceUnavailable(f"{exc.__class__.__name__}: {exc}", source=url) from exc
        if response.status_code >= 400:
            raise SourceUnavailable(f"http error {response.status_code}", source=url)
        return response.text

    async def _wait_for_rate_limit(self) -> None:
        min_interval = 1.0 / max(self.config.requests_per_sec, 0.1)
        async with self._rate_lock:
            now = time.monotonic()
            wait_for = max(0.0, self._next_allowed_at - now)
            self._next_allowed_at = max(now, self._next_allowed_at) + min_interval
        if wait_for > 0:
            await asyncio.sleep(wait_for)
