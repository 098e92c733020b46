#!/usr/bin/env python3
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))

from nfo_ratings.ingestion.nfo_rating_updater import (  # noqa: E402
    DEFAULT_PATTERN,
    NoDirectoriesError,
    update_ratings,
)
from nfo_ratings.integrations.imdb.title_page_ratings import HttpImdbRatingClient  # noqa: E402
from nfo_ratings.utils.env import default_delay_seconds, default_root, load_env  # noqa: E402

logger = logging.getLogger("update_nfo_ratings")


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="update_nfo_ratings",
        description="Fill in missing IMDb ratings in .nfo files, one subdirectory at a time.",
    )
    parser.add_argument(
        "--root",
        default=default_root(),
        help="Directory whose subdirectories hold .nfo files (default: $NFO_RATINGS_ROOT or .).",
    )
    parser.add_argument(
        "--delay",
        type=float,
        default=default_delay_seconds(),
        help="Seconds to pause after a directory with updates (default: $NFO_RATINGS_DELAY_SECONDS or 15).",
    )
    parser.add_argument("--pattern", default=DEFAULT_PATTERN, help=f"File glob per directory (default: {DEFAULT_PATTERN}).")
    parser.add_argument("--dry-run", action="store_true", help="Fetch ratings without rewriting any file.")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging.")
    return parser.parse_args(argv)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )
    # urllib3 connection chatter drowns out the per-file lines at DEBUG.
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def main(argv: list[str] | None = None) -> int:
    load_env()
    args = _parse_args(argv if argv is not None else sys.argv[1:])
    _configure_logging(args.verbose)

    root = Path(args.root).expanduser()
    client = HttpImdbRatingClient()
    try:
        summary = update_ratings(
            root,
            client,
            delay_seconds=max(0.0, args.delay),
            pattern=args.pattern,
            dry_run=args.dry_run,
        )
    except NoDirectoriesError as exc:
        logger.error(str(exc))
        return 1

    print(
        "RATINGS summary "
        f"directories={len(summary.directories)} "
        f"attempted={summary.attempted} "
        f"updated={summary.updated} "
        f"skipped={summary.skipped} "
        f"failed={summary.failed}"
        + (" (dry run)" if args.dry_run else "")
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
