from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from unittest.mock import MagicMock

import pytest
import requests

from nfo_ratings.integrations.imdb.title_page_ratings import (
    HttpImdbRatingClient,
    imdb_title_url,
    parse_imdb_rating_html,
)
from nfo_ratings.models.ratings import FETCH_FAILED, FETCH_NO_DATA, FETCH_OK, RatingRecord

RATING_BAR_HTML = """
<div data-testid="hero-rating-bar__aggregate-rating" class="sc-3a4309f8-0">
  <div data-testid="hero-rating-bar__aggregate-rating__score" class="sc-eb51e184-2">
    <span class="sc-eb51e184-1">{value}</span><span>/<!-- -->10</span>
  </div>
  <div class="sc-eb51e184-3">{votes}</div>
</div>
"""


def _jsonld(payload: object) -> str:
    return f'<script type="application/ld+json">{json.dumps(payload)}</script>'


def _page(*parts: str) -> str:
    return "<html><head><title>Sample Movie (1994) - IMDb</title>" + "".join(parts) + "</head><body></body></html>"


MOVIE_JSONLD = {
    "@context": "https://schema.org",
    "@type": "Movie",
    "name": "Sample Movie",
    "aggregateRating": {
        "@type": "AggregateRating",
        "ratingCount": 125487,
        "bestRating": 10,
        "worstRating": 1,
        "ratingValue": 7.8,
    },
}


@dataclass
class _FakeResponse:
    status_code: int = 200
    content: bytes = b""
    headers: dict[str, str] = field(default_factory=lambda: {"content-type": "text/html; charset=utf-8"})


def _session_returning(response: _FakeResponse) -> MagicMock:
    session = MagicMock()
    session.get.return_value = response
    return session


def test_structured_data_takes_precedence_over_rating_bar() -> None:
    html = _page(_jsonld(MOVIE_JSONLD), RATING_BAR_HTML.format(value="7.7", votes="125K"))

    parsed = parse_imdb_rating_html(html)

    assert parsed == (RatingRecord(rating_value="7.8", vote_count=125487), "jsonld")


def test_picks_title_block_among_several_jsonld_payloads() -> None:
    breadcrumbs = {"@type": "BreadcrumbList", "itemListElement": []}
    series = {"@type": "TVSeries", "aggregateRating": {"ratingValue": "5.2", "ratingCount": "3,291"}}

    parsed = parse_imdb_rating_html(_page(_jsonld([breadcrumbs, series])))

    assert parsed == (RatingRecord(rating_value="5.2", vote_count=3291), "jsonld")


def test_falls_back_to_rating_bar_without_structured_data() -> None:
    parsed = parse_imdb_rating_html(_page(RATING_BAR_HTML.format(value="8.1", votes="1.2M")))

    assert parsed == (RatingRecord(rating_value="8.1", vote_count=1_200_000), "rating_bar")


def test_malformed_jsonld_falls_back_and_is_logged(caplog: pytest.LogCaptureFixture) -> None:
    html = _page(
        '<script type="application/ld+json">{"@type": "Movie", "aggregateRating": </script>',
        RATING_BAR_HTML.format(value="6.4", votes="12,345"),
    )

    with caplog.at_level(logging.DEBUG, logger="nfo_ratings.integrations.imdb.title_page_ratings"):
        parsed = parse_imdb_rating_html(html)

    assert parsed == (RatingRecord(rating_value="6.4", vote_count=12345), "rating_bar")
    assert any("malformed JSON-LD" in record.getMessage() for record in caplog.records)


def test_incomplete_jsonld_rating_falls_back() -> None:
    partial = {"@type": "Movie", "aggregateRating": {"ratingValue": 7.1, "ratingCount": ""}}
    html = _page(_jsonld(partial), RATING_BAR_HTML.format(value="7.1", votes="980"))

    assert parse_imdb_rating_html(html) == (RatingRecord(rating_value="7.1", vote_count=980), "rating_bar")


@pytest.mark.parametrize(
    "body",
    [
        _page(),
        _page(RATING_BAR_HTML.format(value="7.0", votes="")),
        _page(RATING_BAR_HTML.format(value="", votes="12K")),
        _page(RATING_BAR_HTML.format(value="7.0", votes="lots")),
        _page(_jsonld({"@type": "Movie", "name": "Unrated"})),
    ],
)
def test_returns_none_when_no_complete_rating(body: str) -> None:
    assert parse_imdb_rating_html(body) is None


def test_fetch_rating_requests_canonical_url_with_browser_headers() -> None:
    session = _session_returning(_FakeResponse(content=_page(_jsonld(MOVIE_JSONLD)).encode("utf-8")))
    client = HttpImdbRatingClient(session=session)

    result = client.fetch_rating("tt0111161")

    assert result.status == FETCH_OK
    assert result.ok is True
    assert result.source == "jsonld"
    assert result.rating == RatingRecord(rating_value="7.8", vote_count=125487)

    session.get.assert_called_once()
    args, kwargs = session.get.call_args
    assert args[0] == imdb_title_url("tt0111161") == "https://www.imdb.com/title/tt0111161/"
    assert kwargs["timeout"] == 30.0
    headers = kwargs["headers"]
    assert headers["user-agent"].startswith("Mozilla/5.0")
    assert "accept" in headers
    assert "accept-language" in headers


def test_fetch_rating_reports_no_data_separately_from_failures() -> None:
    client = HttpImdbRatingClient(session=_session_returning(_FakeResponse(content=_page().encode("utf-8"))))

    result = client.fetch_rating("tt0111161")

    assert result.status == FETCH_NO_DATA
    assert result.ok is False
    assert result.fetch_failed is False
    assert result.rating is None


def test_fetch_rating_network_error_is_not_raised() -> None:
    session = MagicMock()
    session.get.side_effect = requests.ConnectionError("connection refused")
    client = HttpImdbRatingClient(session=session)

    result = client.fetch_rating("tt0111161")

    assert result.status == FETCH_FAILED
    assert result.fetch_failed is True
    assert "connection refused" in (result.error or "")


def test_fetch_rating_timeout_is_not_raised() -> None:
    session = MagicMock()
    session.get.side_effect = requests.Timeout("read timed out")

    result = HttpImdbRatingClient(session=session).fetch_rating("tt0111161")

    assert result.fetch_failed is True


def test_fetch_rating_non_200_is_a_fetch_failure() -> None:
    body = _page(_jsonld(MOVIE_JSONLD)).encode("utf-8")
    client = HttpImdbRatingClient(session=_session_returning(_FakeResponse(status_code=503, content=body)))

    result = client.fetch_rating("tt0111161")

    assert result.status == FETCH_FAILED
    assert "HTTP 503" in (result.error or "")
    assert result.rating is None


def test_fetch_rating_rejects_invalid_id_without_request() -> None:
    session = MagicMock()
    client = HttpImdbRatingClient(session=session)

    with pytest.raises(ValueError):
        client.fetch_rating("nm0000151")
    session.get.assert_not_called()


def test_non_finite_jsonld_vote_count_falls_back_to_rating_bar() -> None:
    html = _page(
        '<script type="application/ld+json">'
        '{"@type": "Movie", "aggregateRating": {"ratingValue": 9.3, "ratingCount": Infinity}}'
        "</script>",
        RATING_BAR_HTML.format(value="9.3", votes="2.9M"),
    )

    assert parse_imdb_rating_html(html) == (RatingRecord(rating_value="9.3", vote_count=2_900_000), "rating_bar")


def test_out_of_range_jsonld_numbers_are_rejected() -> None:
    html = _page(
        '<script type="application/ld+json">'
        '{"@type": "Movie", "aggregateRating": {"ratingValue": 1e400, "ratingCount": 1e400}}'
        "</script>"
    )

    assert parse_imdb_rating_html(html) is None


def test_extractor_errors_move_on_to_next_extractor(monkeypatch: pytest.MonkeyPatch) -> None:
    from nfo_ratings.integrations.imdb import title_page_ratings as mod

    def broken(soup: object) -> RatingRecord | None:
        raise KeyError("unexpected markup")

    monkeypatch.setattr(mod, "RATING_EXTRACTORS", (("jsonld", broken), *mod.RATING_EXTRACTORS[1:]))

    html = _page(_jsonld(MOVIE_JSONLD), RATING_BAR_HTML.format(value="7.7", votes="125K"))

    assert mod.parse_imdb_rating_html(html) == (RatingRecord(rating_value="7.7", vote_count=125_000), "rating_bar")


RATING_BAR_WITH_SPACER_HTML = """
<div data-testid="hero-rating-bar__aggregate-rating" class="sc-bde20123-0 dLwiNw">
  <div data-testid="hero-rating-bar__aggregate-rating__score" class="sc-bde20123-2 cdQqzc">
    <span class="sc-bde20123-1 cMEQkK">9.3</span><span>/<!-- -->10</span>
  </div>
  <div class="sc-bde20123-3 bjjENQ"></div>
  <div class="sc-bde20123-3 gPVQxL">2.9M</div>
</div>
"""


def test_rating_bar_skips_empty_spacer_before_vote_count() -> None:
    parsed = parse_imdb_rating_html(_page(RATING_BAR_WITH_SPACER_HTML))

    assert parsed == (RatingRecord(rating_value="9.3", vote_count=2_900_000), "rating_bar")
