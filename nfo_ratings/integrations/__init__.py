"""
External system integrations (IMDb).

Remote metadata clients live under this namespace so they remain decoupled
from the CLI entrypoint in `scripts/`.
"""
