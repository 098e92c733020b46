"""
IMDb integration clients.
"""

from __future__ import annotations

from nfo_ratings.integrations.imdb.title_page_ratings import (
    HttpImdbRatingClient,
    parse_imdb_rating_html,
)

__all__ = [
    "HttpImdbRatingClient",
    "parse_imdb_rating_html",
]
