from __future__ import annotations

import re

from app.core.numbers import round_half_up
from app.schemas.analysis import (
    ATSCheck,
    ATSChecks,
    ATSRecommendation,
    ATSReport,
    FileFormatCheck,
    KeywordCheck,
    ReadabilityCheck,
    StructureCheck,
)

ATS_FRIENDLY_THRESHOLD = 7

CHECK_WEIGHTS: dict[str, float] = {
    "formatting": 0.25,
    "keywords": 0.25,
    "structure": 0.25,
    "readability": 0.20,
    "file_format": 0.05,
}

COMMON_KEYWORDS = (
    "experience",
    "skills",
    "education",
    "work",
    "job",
    "company",
    "project",
    "team",
    "management",
    "development",
    "analysis",
)

ACTION_VERBS = (
    "achieved",
    "managed",
    "led",
    "developed",
    "created",
    "implemented",
    "improved",
    "increased",
    "reduced",
    "optimized",
    "designed",
    "built",
)

_NON_ASCII = re.compile(r"[^\x00-\x7f]")
_TABLE_SPACING = re.compile(r"\t{2,}|\s{4,}")
_BULLET_GLYPHS = re.compile(r"[•▪▫‣⁃◦]")
_HEADER_FOOTER = re.compile(r"page \d+ of \d+|confidential|proprietary", re.IGNORECASE)
_SECTION_HEADERS = (
    re.compile(r"summary|objective|profile", re.IGNORECASE),
    re.compile(r"experience|employment|work history", re.IGNORECASE),
    re.compile(r"education|academic", re.IGNORECASE),
    re.compile(r"skills|competencies|technical", re.IGNORECASE),
    re.compile(r"contact|personal information", re.IGNORECASE),
)
_YEAR = re.compile(r"\b(?:19|20)\d{2}\b")
_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_QUANTIFIER = re.compile(r"\b\d+(?:[.,]\d+)?(?:%|k|million|billion|dollars?|\$)?\b")
_ACTION_VERB_PATTERNS = tuple(re.compile(rf"\b{verb}", re.IGNORECASE) for verb in ACTION_VERBS)

_GENERAL_TIPS = ATSRecommendation(
    category="General ATS Tips",
    priority="Low",
    suggestions=[
        "Save resume as both PDF and Word document versions",
        "Use standard section headings that ATS systems recognize",
        "Avoid images, graphics, and fancy formatting",
        "Include a skills section with relevant keywords",
        "Spell out abbreviations at least once",
    ],
)


def check_formatting(text: str) -> ATSCheck:
    score = 10
    issues: list[str] = []
    if _NON_ASCII.search(text):
        score -= 1
        issues.append("Contains special characters that may not parse correctly")
    if _TABLE_SPACING.search(text):
        score -= 1
        issues.append("May contain table formatting that ATS cannot read")
    if len(_BULLET_GLYPHS.findall(text)) > 20:
        score -= 1
        issues.append("Excessive use of special bullet points")
    if _HEADER_FOOTER.search(text):
        score -= 1
        issues.append("May contain headers/footers that confuse ATS")
    return ATSCheck(score=max(1, score), issues=issues, passed=score >= 8)


def check_keywords(text: str) -> KeywordCheck:
    text_lower = text.lower()
    found = [keyword for keyword in COMMON_KEYWORDS if keyword in text_lower]
    density = len(found) / len(COMMON_KEYWORDS)
    score = round_half_up(density * 10)
    issues: list[str] = []
    if density < 0.3:
        issues.append("Low keyword density - add more industry-relevant terms")

    # An empty text still counts as one "word" so the ratio stays defined.
    word_count = max(1, len(re.split(r"\s+", text)))
    occurrences = sum(text_lower.count(keyword) for keyword in COMMON_KEYWORDS)
    if occurrences / word_count > 0.1:
        score -= 2
        issues.append("Possible keyword stuffing detected")

    return KeywordCheck(
        score=max(1, min(10, score)),
        issues=issues,
        passed=score >= 6,
        keyword_density=density,
        found_keywords=len(found),
        total_keywords=len(COMMON_KEYWORDS),
    )


def check_structure(text: str) -> StructureCheck:
    score = 10
    issues: list[str] = []
    sections_found = sum(1 for pattern in _SECTION_HEADERS if pattern.search(text))
    if sections_found < 3:
        score -= 2
        issues.append("Missing clear section headers")

    lines = [line.strip() for line in text.split("\n") if line.strip()]
    short_lines = sum(1 for line in lines if len(line) < 50)
    if lines and short_lines / len(lines) > 0.6:
        score -= 1
        issues.append("Too many short lines may indicate poor structure")

    years = [int(year) for year in _YEAR.findall(text)]
    if len(years) >= 2 and years != sorted(years, reverse=True):
        score -= 1
        issues.append("Consider reverse chronological order for work experience")

    return StructureCheck(
        score=max(1, score),
        issues=issues,
        passed=score >= 7,
        sections_found=sections_found,
        sections_expected=len(_SECTION_HEADERS),
    )


def check_readability(text: str) -> ReadabilityCheck:
    score = 10
    issues: list[str] = []

    sentences = [sentence for sentence in _SENTENCE_SPLIT.split(text) if sentence.strip()]
    if sentences:
        avg_sentence_length = sum(len(re.split(r"\s+", sentence)) for sentence in sentences) / len(sentences)
    else:
        avg_sentence_length = 0.0
    if avg_sentence_length > 25:
        score -= 1
        issues.append("Sentences may be too long for ATS parsing")

    verbs_found = sum(1 for pattern in _ACTION_VERB_PATTERNS if pattern.search(text))
    if verbs_found < 3:
        score -= 1
        issues.append("Add more action verbs to describe achievements")

    quantifiers = len(_QUANTIFIER.findall(text))
    if quantifiers < 3:
        score -= 1
        issues.append("Include more quantifiable achievements and metrics")

    return ReadabilityCheck(
        score=max(1, score),
        issues=issues,
        passed=score >= 7,
        avg_sentence_length=round_half_up(avg_sentence_length),
        action_verbs_found=verbs_found,
        quantifiable_metrics=quantifiers,
    )


def check_file_format() -> FileFormatCheck:
    # Scored on the accepted formats, not on the uploaded bytes.
    return FileFormatCheck(
        score=8,
        issues=[],
        passed=True,
        format="PDF/DOC",
        recommendation="PDF and DOC formats are generally ATS-friendly",
    )


def calculate_ats_score(checks: ATSChecks) -> int:
    weighted = sum(getattr(checks, name).score * weight for name, weight in CHECK_WEIGHTS.items())
    return round_half_up(weighted)


def generate_ats_recommendations(checks: ATSChecks) -> list[ATSRecommendation]:
    recommendations: list[ATSRecommendation] = []
    if not checks.formatting.passed:
        recommendations.append(
            ATSRecommendation(
                category="Formatting",
                priority="High",
                suggestions=[
                    "Use simple, clean formatting without tables or complex layouts",
                    "Avoid special characters and symbols",
                    "Use standard fonts like Arial, Calibri, or Times New Roman",
                ],
            )
        )
    if not checks.keywords.passed:
        recommendations.append(
            ATSRecommendation(
                category="Keywords",
                priority="High",
                suggestions=[
                    "Include more industry-specific keywords from job descriptions",
                    'Use both acronyms and full terms (e.g., "AI" and "Artificial Intelligence")',
                    "Naturally integrate keywords throughout your experience descriptions",
                ],
            )
        )
    if not checks.structure.passed:
        recommendations.append(
            ATSRecommendation(
                category="Structure",
                priority="Medium",
                suggestions=[
                    "Use clear section headers (Experience, Education, Skills)",
                    "Organize experience in reverse chronological order",
                    "Use consistent formatting for dates and job titles",
                ],
            )
        )
    if not checks.readability.passed:
        recommendations.append(
            ATSRecommendation(
                category="Content",
                priority="Medium",
                suggestions=[
                    "Start bullet points with strong action verbs",
                    "Include specific numbers and metrics to quantify achievements",
                    "Keep sentences concise and focused",
                ],
            )
        )
    recommendations.append(_GENERAL_TIPS.model_copy(deep=True))
    return recommendations


def check_ats_compatibility(text: str) -> ATSReport:
    text = text or ""
    checks = ATSChecks(
        formatting=check_formatting(text),
        keywords=check_keywords(text),
        structure=check_structure(text),
        readability=check_readability(text),
        file_format=check_file_format(),
    )
    score = calculate_ats_score(checks)
    return ATSReport(
        score=score,
        checks=checks,
        recommendations=generate_ats_recommendations(checks),
        is_ats_friendly=score >= ATS_FRIENDLY_THRESHOLD,
    )


def generate_ats_summary(report: ATSReport) -> str:
    score = report.score
    if score >= 8:
        verdict = "Excellent ATS compatibility. Your resume should parse well in most systems."
    elif score >= 6:
        verdict = "Good ATS compatibility with room for improvement."
    elif score >= 4:
        verdict = "Fair ATS compatibility. Consider making recommended changes."
    else:
        verdict = "Poor ATS compatibility. Significant improvements needed."
    checks = report.checks.all()
    passed = sum(1 for check in checks if check.passed)
    return f"ATS Compatibility Score: {score}/10 - {verdict} Passed {passed}/{len(checks)} ATS compatibility checks."
