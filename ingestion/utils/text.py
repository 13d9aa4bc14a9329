"""Text helpers shared by adapters and the normalizer."""

from __future__ import annotations

import re

_WS_RE = re.compile(r"[ \t\r\f\v\u00a0]+")
_FENCE_OPEN_RE = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n?")
_FENCE_CLOSE_RE = re.compile(r"\n?```\s*$")


def clean_text(text: str) -> str:
    """Collapse runs of whitespace inside lines and drop blank lines."""
    lines = [_WS_RE.sub(" ", line).strip() for line in (text or "").splitlines()]
    return "\n".join(line for line in lines if line)


def clean_inline(text: str) -> str:
    return " ".join((text or "").split())


def count_words(text: str) -> int:
    # whitespace split works for Devanagari as well
    return len((text or "").split())


def strip_code_fence(text: str) -> str:
    """Remove a surrounding ```json ... ``` fence if present."""
    cleaned = (text or "").strip()
    if not cleaned.startswith("```"):
        return cleaned
    cleaned = _FENCE_OPEN_RE.sub("", cleaned, count=1)
    cleaned = _FENCE_CLOSE_RE.sub("", cleaned, count=1)
    return cleaned.strip()

