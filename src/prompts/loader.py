"""Prompt text shipped alongside the package."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

PROMPT_DIR = Path(__file__).resolve().parent


@lru_cache(maxsize=None)
def load_prompt(filename: str, **fields: str) -> str:
    """Read `filename` from the prompt directory and fill `{placeholders}`."""

    path = PROMPT_DIR / filename
    if not path.is_file():
        raise RuntimeError(f"Prompt file not found: {filename}")
    text = path.read_text(encoding="utf-8").strip()
    return text.format(**fields) if fields else text
