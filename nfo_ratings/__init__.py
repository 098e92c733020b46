"""
Shared nfo-ratings library code.

This package holds the reusable pieces (IMDb rating fetcher, NFO merge logic,
directory orchestration). The CLI entrypoint lives in `scripts/` and imports
from `nfo_ratings` rather than the other way around.
"""
