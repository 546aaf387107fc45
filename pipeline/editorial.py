"""Editorial quality score of a composed article (decides draft vs published)."""

from __future__ import annotations

import re
from typing import Sequence


PUBLISH_THRESHOLD = 80.0


def count_paragraphs(content: str) -> int:
    paragraphs = re.findall(r"<p[\s>]", content or "", flags=re.IGNORECASE)
    if paragraphs:
        return len(paragraphs)
    return len([block for block in (content or "").split("\n\n") if block.strip()])


def editorial_quality_score(title: str, content: str, tags: Sequence[str]) -> float:
    """
    Score 0-100 from title length (30), body length (50), tag count (10)
    and paragraph structure (10).
    """
    score = 0.0

    title = title or ""
    if 5 <= len(title) <= 20:
        score += 30
    elif title:
        score += 15

    length = len(content or "")
    if 800 <= length <= 1500:
        score += 50
    elif length >= 500:
        score += 35
    elif length >= 200:
        score += 20

    if 3 <= len(tags) <= 7:
        score += 10
    elif tags:
        score += 5

    paragraphs = count_paragraphs(content)
    if paragraphs >= 3:
        score += 10
    elif paragraphs >= 2:
        score += 5

    return min(score, 100.0)


def is_publishable(score: float) -> bool:
    return score >= PUBLISH_THRESHOLD
