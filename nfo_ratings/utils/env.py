from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

DEFAULT_ROOT = "."
DEFAULT_DELAY_SECONDS = 15.0


def load_env(*, override: bool = False) -> Path | None:
    repo_root = Path(__file__).resolve().parents[2]
    candidates = [
        repo_root / ".env",
        Path.cwd() / ".env",
    ]
    for path in candidates:
        if path.is_file():
            load_dotenv(dotenv_path=path, override=override)
            return path
    return None


def default_root() -> str:
    value = (os.getenv("NFO_RATINGS_ROOT") or "").strip()
    return value or DEFAULT_ROOT


def default_delay_seconds() -> float:
    raw = (os.getenv("NFO_RATINGS_DELAY_SECONDS") or "").strip()
    if not raw:
        return DEFAULT_DELAY_SECONDS
    try:
        value = float(raw)
    except ValueError:
        return DEFAULT_DELAY_SECONDS
    return max(0.0, value)
