from __future__ import annotations

import math
import re

from app.schemas.analysis import BasicMetrics, FormattingFlags, SectionFlags

WORDS_PER_PAGE = 500

_SECTION_PROBES: dict[str, re.Pattern[str]] = {
    "contact": re.compile(r"contact|email|phone|address", re.IGNORECASE),
    "experience": re.compile(r"experience|work|employment|job", re.IGNORECASE),
    "education": re.compile(r"education|degree|university|college|school", re.IGNORECASE),
    "skills": re.compile(r"skills|technical|programming|software", re.IGNORECASE),
    "summary": re.compile(r"summary|objective|profile", re.IGNORECASE),
}

_BULLET_GLYPHS = re.compile(r"[•·▪▫‣⁃]")
_DASH_BULLET = re.compile(r"^\s*[-*+]\s", re.MULTILINE)
_PHONE = re.compile(r"\b\d{3}[-.]?\d{3}[-.]?\d{4}\b")


def calculate_basic_metrics(text: str) -> BasicMetrics:
    text = text or ""
    lines = [line for line in text.split("\n") if line.strip()]
    words = text.split()

    sections = SectionFlags(**{name: bool(pattern.search(text)) for name, pattern in _SECTION_PROBES.items()})
    formatting = FormattingFlags(
        has_bullet_points=bool(_BULLET_GLYPHS.search(text) or _DASH_BULLET.search(text)),
        has_numbers=bool(re.search(r"\d", text)),
        has_emails="@" in text,
        has_phones=bool(_PHONE.search(text)),
    )
    return BasicMetrics(
        word_count=len(words),
        line_count=len(lines),
        character_count=len(text),
        estimated_pages=math.ceil(len(words) / WORDS_PER_PAGE),
        sections=sections,
        formatting=formatting,
    )
