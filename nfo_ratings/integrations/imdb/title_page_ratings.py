from __future__ import annotations

import json
import logging
import math
import re
from collections.abc import Callable, Mapping
from decimal import Decimal, InvalidOperation
from typing import Any
from urllib.parse import quote

import requests
from bs4 import BeautifulSoup

from nfo_ratings.models.ratings import (
    FETCH_FAILED,
    FETCH_NO_DATA,
    FETCH_OK,
    RatingFetchResult,
    RatingRecord,
)
from nfo_ratings.utils.votes import normalize_vote_count

logger = logging.getLogger(__name__)

IMDB_TITLE_ID_RE = re.compile(r"^tt\d+$")

DEFAULT_TIMEOUT_SECONDS = 30.0

_DEFAULT_HEADERS = {
    "accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "accept-language": "en-US,en;q=0.9",
    "user-agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36",
}

_TITLE_TYPES = ("Movie", "TVSeries", "TVMiniSeries", "TVMovie", "TVSpecial", "TVEpisode", "VideoGame", "Video")

_RATING_SCORE_SELECTOR = '[data-testid="hero-rating-bar__aggregate-rating__score"]'


def imdb_title_url(imdb_id: str) -> str:
    return f"https://www.imdb.com/title/{quote(imdb_id)}/"


def _parse_charset(content_type: str | None) -> str | None:
    if not content_type:
        return None
    match = re.search(r"charset=([^\s;]+)", content_type, re.IGNORECASE)
    if not match:
        return None
    return match.group(1).strip("\"'")


def _decode_bytes(data: bytes, content_type: str | None) -> str:
    charset = _parse_charset(content_type) or "utf-8"
    try:
        return data.decode(charset)
    except (LookupError, UnicodeDecodeError):
        return data.decode("utf-8", errors="replace")


def _extract_jsonld_blocks(soup: BeautifulSoup) -> list[dict[str, Any]]:
    blocks: list[dict[str, Any]] = []
    for node in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = node.string or node.get_text(strip=True)
        if not raw:
            continue
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as exc:
            logger.debug(f"Ignoring malformed JSON-LD block: {exc}")
            continue
        if isinstance(payload, list):
            for item in payload:
                if isinstance(item, dict):
                    blocks.append(item)
        elif isinstance(payload, dict):
            blocks.append(payload)
    return blocks


def _pick_primary_jsonld(blocks: list[dict[str, Any]]) -> dict[str, Any] | None:
    for block in blocks:
        kind = block.get("@type")
        if isinstance(kind, list):
            kind_values = {str(k) for k in kind}
        else:
            kind_values = {str(kind)} if kind is not None else set()
        if any(value in kind_values for value in _TITLE_TYPES):
            return block
    return blocks[0] if blocks else None


def _coerce_rating_value(value: Any) -> str | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        text = str(value)
    elif isinstance(value, str):
        text = value.strip()
    else:
        return None
    if not text:
        return None
    try:
        parsed = Decimal(text)
    except InvalidOperation:
        return None
    if not parsed.is_finite():
        return None
    return text


def _coerce_vote_count(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 0 else None
    if isinstance(value, float):
        if not math.isfinite(value) or value < 0:
            return None
        return int(value)
    if isinstance(value, str):
        return normalize_vote_count(value)
    return None


def extract_rating_from_jsonld(soup: BeautifulSoup) -> RatingRecord | None:
    blocks = _extract_jsonld_blocks(soup)
    primary = _pick_primary_jsonld(blocks)
    if primary is None:
        logger.debug("No JSON-LD title block found.")
        return None

    aggregate_rating = primary.get("aggregateRating")
    if not isinstance(aggregate_rating, Mapping):
        logger.debug("JSON-LD title block has no aggregateRating.")
        return None

    rating_value = _coerce_rating_value(aggregate_rating.get("ratingValue"))
    vote_count = _coerce_vote_count(aggregate_rating.get("ratingCount"))
    if rating_value is None or vote_count is None:
        logger.debug(
            "JSON-LD aggregateRating incomplete: "
            f"ratingValue={aggregate_rating.get('ratingValue')!r} ratingCount={aggregate_rating.get('ratingCount')!r}"
        )
        return None
    return RatingRecord(rating_value=rating_value, vote_count=vote_count)


def extract_rating_from_rating_bar(soup: BeautifulSoup) -> RatingRecord | None:
    score = soup.select_one(_RATING_SCORE_SELECTOR)
    if score is None:
        logger.debug("Rating bar score element not found.")
        return None

    value_node = score.find("span")
    value_text = (value_node if value_node is not None else score).get_text(strip=True)
    rating_value = _coerce_rating_value(value_text)

    # IMDb renders empty spacer divs between the score and the vote count.
    votes_node = next((node for node in score.find_next_siblings() if node.get_text(strip=True)), None)
    votes_text = votes_node.get_text(strip=True) if votes_node is not None else ""
    if rating_value is None or not votes_text:
        logger.debug(f"Rating bar incomplete: value={value_text!r} votes={votes_text!r}")
        return None

    vote_count = normalize_vote_count(votes_text)
    if vote_count is None:
        logger.debug(f"Rating bar vote count not convertible: {votes_text!r}")
        return None
    return RatingRecord(rating_value=rating_value, vote_count=vote_count)


# Tried in order; the first extractor returning a record wins.
RATING_EXTRACTORS: tuple[tuple[str, Callable[[BeautifulSoup], RatingRecord | None]], ...] = (
    ("jsonld", extract_rating_from_jsonld),
    ("rating_bar", extract_rating_from_rating_bar),
)


def parse_imdb_rating_html(html: str) -> tuple[RatingRecord, str] | None:
    """
    Extract the aggregate rating from an IMDb title page.

    Returns `(record, source)` where `source` names the extractor that matched,
    or None when no extractor found a complete rating.
    """
    soup = BeautifulSoup(html or "", "html.parser")
    for source, extractor in RATING_EXTRACTORS:
        try:
            record = extractor(soup)
        except Exception as exc:  # noqa: BLE001
            logger.debug(f"Rating extractor {source} failed: {exc!r}")
            continue
        if record is not None:
            return record, source
    return None


class HttpImdbRatingClient:
    def __init__(
        self,
        *,
        session: requests.Session | None = None,
        extra_headers: Mapping[str, str] | None = None,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self._session = session or requests.Session()
        self._extra_headers = dict(extra_headers or {})
        self._timeout_seconds = timeout_seconds

    def _get(self, url: str) -> tuple[int | None, str | None, str | None]:
        headers = {**_DEFAULT_HEADERS, **self._extra_headers}
        try:
            resp = self._session.get(url, headers=headers, timeout=self._timeout_seconds)
        except requests.RequestException as exc:
            return None, None, str(exc)
        data = resp.content or b""
        text = _decode_bytes(data, resp.headers.get("content-type"))
        return resp.status_code, text, None

    def fetch_rating(self, imdb_id: str) -> RatingFetchResult:
        imdb_id = str(imdb_id or "").strip()
        if not IMDB_TITLE_ID_RE.match(imdb_id):
            raise ValueError(f"Invalid IMDb id: {imdb_id!r}")

        url = imdb_title_url(imdb_id)
        status, html, error = self._get(url)
        if error is not None:
            logger.warning(f"IMDb request failed for {imdb_id}: {error}")
            return RatingFetchResult(imdb_id=imdb_id, status=FETCH_FAILED, error=f"IMDb request failed: {error}")
        if status != 200:
            snippet = (html or "")[:200]
            logger.warning(f"IMDb request for {imdb_id} returned HTTP {status}")
            return RatingFetchResult(
                imdb_id=imdb_id,
                status=FETCH_FAILED,
                error=f"IMDb request failed with HTTP {status}: {snippet}",
            )

        parsed = parse_imdb_rating_html(html or "")
        if parsed is None:
            logger.info(f"No rating found on IMDb page for {imdb_id}")
            return RatingFetchResult(imdb_id=imdb_id, status=FETCH_NO_DATA)

        record, source = parsed
        logger.debug(f"Parsed rating for {imdb_id} via {source}: {record.rating_value} ({record.vote_count} votes)")
        return RatingFetchResult(imdb_id=imdb_id, status=FETCH_OK, rating=record, source=source)
