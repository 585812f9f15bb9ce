"""
Entry point for running oauth_context as a module.

This file enables:
- `python -m oauth_context`
- `uv run python -m oauth_context`
"""

from __future__ import annotations

from oauth_context.cli import main

if __name__ == "__main__":
    raise SystemExit(main())
