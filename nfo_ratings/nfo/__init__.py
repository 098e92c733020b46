from nfo_ratings.nfo.document import (
    NfoParseError,
    NfoTree,
    find_imdb_id,
    has_complete_imdb_rating,
    load_nfo,
    merge_imdb_rating,
    merge_rating_into_nfo,
    write_nfo,
)

__all__ = [
    "NfoParseError",
    "NfoTree",
    "find_imdb_id",
    "has_complete_imdb_rating",
    "load_nfo",
    "merge_imdb_rating",
    "merge_rating_into_nfo",
    "write_nfo",
]
