from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

from nfo_ratings.integrations.imdb.title_page_ratings import IMDB_TITLE_ID_RE
from nfo_ratings.models.ratings import RatingFetchResult, RatingRecord
from nfo_ratings.nfo.document import (
    NfoParseError,
    find_imdb_id,
    has_complete_imdb_rating,
    load_nfo,
    merge_rating_into_nfo,
)

logger = logging.getLogger(__name__)

DEFAULT_PATTERN = "*.nfo"

STATUS_UPDATED = "updated"
STATUS_WOULD_UPDATE = "would_update"
STATUS_SKIPPED_COMPLETE = "skipped_complete"
STATUS_SKIPPED_INVALID_ID = "skipped_invalid_id"
STATUS_PARSE_ERROR = "parse_error"
STATUS_FAILED = "failed"
STATUS_WRITE_FAILED = "write_failed"


class RatingClient(Protocol):
    def fetch_rating(self, imdb_id: str) -> RatingFetchResult: ...


class NoDirectoriesError(RuntimeError):
    def __init__(self, message: str, *, root: Path) -> None:
        super().__init__(message)
        self.root = root


@dataclass(frozen=True)
class NfoFileOutcome:
    path: Path
    status: str
    imdb_id: str | None = None
    rating: RatingRecord | None = None
    message: str | None = None

    @property
    def written(self) -> bool:
        return self.status == STATUS_UPDATED


@dataclass(frozen=True)
class DirectorySummary:
    directory: Path
    outcomes: list[NfoFileOutcome] = field(default_factory=list)

    def count(self, *statuses: str) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status in statuses)

    @property
    def updated(self) -> int:
        return self.count(STATUS_UPDATED)

    @property
    def should_pause(self) -> bool:
        return self.updated > 0


@dataclass(frozen=True)
class RunSummary:
    root: Path
    directories: list[DirectorySummary] = field(default_factory=list)
    pauses: int = 0

    def count(self, *statuses: str) -> int:
        return sum(directory.count(*statuses) for directory in self.directories)

    @property
    def attempted(self) -> int:
        return sum(len(directory.outcomes) for directory in self.directories)

    @property
    def updated(self) -> int:
        return self.count(STATUS_UPDATED, STATUS_WOULD_UPDATE)

    @property
    def skipped(self) -> int:
        return self.count(STATUS_SKIPPED_COMPLETE, STATUS_SKIPPED_INVALID_ID)

    @property
    def failed(self) -> int:
        return self.count(STATUS_PARSE_ERROR, STATUS_FAILED, STATUS_WRITE_FAILED)


def process_nfo_file(path: Path, client: RatingClient, *, dry_run: bool = False) -> NfoFileOutcome:
    try:
        tree = load_nfo(path)
    except NfoParseError as exc:
        logger.error(f"Skipping {path}: {exc}")
        return NfoFileOutcome(path=path, status=STATUS_PARSE_ERROR, message=str(exc))

    root = tree.getroot()
    imdb_id = find_imdb_id(root)
    if not imdb_id or not IMDB_TITLE_ID_RE.match(imdb_id):
        logger.warning(f"Skipping {path}: no valid IMDb id (found {imdb_id!r})")
        return NfoFileOutcome(
            path=path,
            status=STATUS_SKIPPED_INVALID_ID,
            imdb_id=imdb_id,
            message="missing or invalid IMDb id",
        )

    if has_complete_imdb_rating(root):
        logger.debug(f"Skipping {path}: IMDb rating already present")
        return NfoFileOutcome(path=path, status=STATUS_SKIPPED_COMPLETE, imdb_id=imdb_id)

    result = client.fetch_rating(imdb_id)
    if not result.ok or result.rating is None:
        if result.fetch_failed:
            message = result.error or "IMDb request failed"
        else:
            message = "no rating found on IMDb page"
        logger.warning(f"No rating for {path} ({imdb_id}): {message}")
        return NfoFileOutcome(path=path, status=STATUS_FAILED, imdb_id=imdb_id, message=message)

    rating = result.rating
    if dry_run:
        logger.info(f"[dry-run] Would set IMDb rating {rating.rating_value} ({rating.vote_count} votes) in {path}")
        return NfoFileOutcome(path=path, status=STATUS_WOULD_UPDATE, imdb_id=imdb_id, rating=rating)

    if not merge_rating_into_nfo(tree, path, rating):
        return NfoFileOutcome(
            path=path,
            status=STATUS_WRITE_FAILED,
            imdb_id=imdb_id,
            rating=rating,
            message="failed to write NFO",
        )

    logger.info(f"Updated {path}: IMDb {rating.rating_value} ({rating.vote_count} votes, via {result.source})")
    return NfoFileOutcome(path=path, status=STATUS_UPDATED, imdb_id=imdb_id, rating=rating)


def list_target_directories(root: Path) -> list[Path]:
    if not root.is_dir():
        raise NoDirectoriesError(f"Root path is not a directory: {root}", root=root)
    directories = sorted(path for path in root.iterdir() if path.is_dir())
    if not directories:
        raise NoDirectoriesError(f"No directories found under {root}", root=root)
    return directories


def process_directory(
    directory: Path,
    client: RatingClient,
    *,
    pattern: str = DEFAULT_PATTERN,
    dry_run: bool = False,
) -> DirectorySummary:
    files = sorted(path for path in directory.glob(pattern) if path.is_file())
    if not files:
        logger.debug(f"No files matching {pattern!r} in {directory}")
    outcomes = [process_nfo_file(path, client, dry_run=dry_run) for path in files]
    return DirectorySummary(directory=directory, outcomes=outcomes)


def update_ratings(
    root: Path,
    client: RatingClient,
    *,
    delay_seconds: float,
    pattern: str = DEFAULT_PATTERN,
    dry_run: bool = False,
    sleep: Callable[[float], None] = time.sleep,
) -> RunSummary:
    """
    Walk the subdirectories of `root` and fill in missing IMDb ratings.

    After a directory in which at least one file was written, pause for
    `delay_seconds` before moving on to keep the request rate toward IMDb low.
    Raises NoDirectoriesError when `root` has no subdirectories.
    """
    directories = list_target_directories(root)
    summaries: list[DirectorySummary] = []
    pauses = 0
    for directory in directories:
        logger.info(f"Processing {directory}")
        summary = process_directory(directory, client, pattern=pattern, dry_run=dry_run)
        summaries.append(summary)
        if summary.should_pause and delay_seconds > 0:
            logger.debug(f"Sleeping {delay_seconds}s after {summary.updated} update(s) in {directory}")
            sleep(delay_seconds)
            pauses += 1
    return RunSummary(root=root, directories=summaries, pauses=pauses)
