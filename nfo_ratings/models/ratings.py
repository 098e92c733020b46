from __future__ import annotations

from dataclasses import dataclass

FETCH_OK = "ok"
FETCH_NO_DATA = "no_data"
FETCH_FAILED = "fetch_failed"


@dataclass(frozen=True)
class RatingRecord:
    """
    IMDb aggregate rating for a single title.

    `rating_value` stays a decimal string ("7.8") so it is written to the NFO
    exactly as IMDb published it.
    """

    rating_value: str
    vote_count: int

    def __post_init__(self) -> None:
        if not isinstance(self.rating_value, str) or not self.rating_value.strip():
            raise ValueError(f"rating_value must be a non-empty string: {self.rating_value!r}")
        if isinstance(self.vote_count, bool) or not isinstance(self.vote_count, int) or self.vote_count < 0:
            raise ValueError(f"vote_count must be a non-negative int: {self.vote_count!r}")


@dataclass(frozen=True)
class RatingFetchResult:
    imdb_id: str
    status: str
    rating: RatingRecord | None = None
    source: str | None = None  # "jsonld" | "rating_bar" when status == "ok"
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == FETCH_OK and self.rating is not None

    @property
    def fetch_failed(self) -> bool:
        return self.status == FETCH_FAILED
