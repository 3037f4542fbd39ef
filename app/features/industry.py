from __future__ import annotations

import re
from functools import lru_cache

from app.core.numbers import round_half_up
from app.core.rules import get_rule_value, load_rules
from app.schemas.analysis import (
    BlendedScores,
    CriterionScores,
    IndustryFeedback,
    IndustryFit,
    IndustryProfile,
    LengthRange,
)

GENERAL = "general"

# Which basic score stands in for each weighted industry category.
_CATEGORY_SOURCES: dict[str, str] = {
    "technical_skills": "content",
    "creativity": "content",
    "digital_skills": "content",
    "achievements": "content",
    "skills": "content",
    "experience": "structure",
    "analytical_skills": "structure",
    "projects": "industry_alignment",
    "clinical_skills": "industry_alignment",
    "education": "formatting",
    "communication": "formatting",
    "formatting": "formatting",
    "certifications": "length",
}

_SALES_ACHIEVEMENT_TERMS = {"quota", "revenue", "target", "achievement"}


@lru_cache(maxsize=1)
def load_profiles() -> dict[str, IndustryProfile]:
    raw = load_rules("industries").get("industries") or {}
    if GENERAL not in raw:
        raise RuntimeError("Industry rule table must define a 'general' profile.")
    profiles: dict[str, IndustryProfile] = {}
    for industry_id, entry in raw.items():
        profiles[industry_id] = IndustryProfile(
            id=industry_id,
            name=entry["name"],
            keywords=tuple(entry.get("keywords") or ()),
            required_sections=tuple(entry.get("required_sections") or ()),
            scoring_weights=dict(entry.get("scoring_weights") or {}),
            critical_skills=tuple(entry.get("critical_skills") or ()),
            preferred_length=LengthRange(**entry["preferred_length"]),
            tips=tuple(entry.get("tips") or ()),
        )
    return profiles


@lru_cache(maxsize=1)
def _section_patterns() -> dict[str, re.Pattern[str]]:
    raw = load_rules("industries").get("section_patterns") or {}
    return {name: re.compile(pattern, re.IGNORECASE) for name, pattern in raw.items()}


def get_profile(industry_id: str) -> IndustryProfile:
    profiles = load_profiles()
    return profiles.get(industry_id) or profiles[GENERAL]


def _keywords_found(text_lower: str, keywords: tuple[str, ...]) -> list[str]:
    return [keyword for keyword in keywords if keyword.lower() in text_lower]


def detect_industry(text: str) -> str:
    """Pick the profile with the highest keyword match ratio.

    Profiles are scanned in rule-table order and only a strictly higher ratio
    replaces the current best, so ties go to the profile listed first.
    """
    text_lower = (text or "").lower()
    threshold = float(get_rule_value("industries", "detection.min_match_ratio", 0.1))
    best_id, best_ratio = GENERAL, 0.0
    for industry_id, profile in load_profiles().items():
        if industry_id == GENERAL or not profile.keywords:
            continue
        ratio = len(_keywords_found(text_lower, profile.keywords)) / len(profile.keywords)
        if ratio > best_ratio and ratio > threshold:
            best_id, best_ratio = industry_id, ratio
    return best_id


def analyze_industry_fit(text: str, industry_id: str) -> IndustryFit:
    profile = get_profile(industry_id)
    text = text or ""
    text_lower = text.lower()
    patterns = _section_patterns()
    sections_found = [
        section for section in profile.required_sections if section in patterns and patterns[section].search(text)
    ]
    return IndustryFit(
        industry_match=profile.id,
        industry_name=profile.name,
        sections_found=sections_found,
        sections_required=list(profile.required_sections),
        critical_skills_found=_keywords_found(text_lower, profile.critical_skills),
        critical_skills_required=list(profile.critical_skills),
        industry_keywords_found=_keywords_found(text_lower, profile.keywords),
        industry_keywords_total=len(profile.keywords),
        scoring_weights=dict(profile.scoring_weights),
        recommended_length=profile.preferred_length,
    )


def generate_industry_feedback(fit: IndustryFit) -> IndustryFeedback:
    feedback = IndustryFeedback()
    label = fit.industry_name.lower()

    if len(fit.sections_found) >= len(fit.sections_required):
        feedback.strengths.append(f"Contains all required sections for {fit.industry_name}")
    else:
        missing = [section for section in fit.sections_required if section not in fit.sections_found]
        feedback.improvements.append(f"Add missing sections: {', '.join(missing)}")

    if fit.critical_skills_found:
        feedback.strengths.append(f"Demonstrates {len(fit.critical_skills_found)} critical {label} skills")

    if len(fit.critical_skills_found) < len(fit.critical_skills_required):
        missing_skills = [
            skill
            for skill in fit.critical_skills_required
            if not any(skill.lower() in found.lower() for found in fit.critical_skills_found)
        ]
        feedback.improvements.append(f"Consider highlighting: {', '.join(missing_skills[:3])}")

    if fit.industry_keywords_total:
        ratio = len(fit.industry_keywords_found) / fit.industry_keywords_total
        if ratio > 0.3:
            feedback.strengths.append(f"Strong {label} keyword presence")
        elif ratio < 0.1:
            feedback.improvements.append(f"Include more {label}-specific terminology")

    feedback.industry_specific.extend(get_profile(fit.industry_match).tips)
    return feedback


def _apply_industry_nudges(scores: CriterionScores, fit: IndustryFit) -> CriterionScores:
    adjusted = scores.model_dump()
    industry = fit.industry_match
    if industry == "technology":
        if len(fit.critical_skills_found) > 2:
            adjusted["content"] = min(10, adjusted["content"] + 1)
        if adjusted["length"] < 7:
            adjusted["length"] = max(1, adjusted["length"] - 1)
    elif industry == "sales":
        if any(keyword.lower() in _SALES_ACHIEVEMENT_TERMS for keyword in fit.industry_keywords_found):
            adjusted["content"] = min(10, adjusted["content"] + 1)
    elif industry == "healthcare":
        if adjusted["length"] < 8 and len(fit.sections_found) >= 3:
            adjusted["length"] = min(10, adjusted["length"] + 1)
    return CriterionScores(**adjusted)


def calculate_industry_score(scores: CriterionScores, fit: IndustryFit) -> BlendedScores:
    adjusted = _apply_industry_nudges(scores, fit)
    weights = fit.scoring_weights or get_profile(GENERAL).scoring_weights
    total_weight = sum(weights.values())
    values = adjusted.model_dump()
    if total_weight <= 0:
        overall = round_half_up(sum(values.values()) / len(values))
    else:
        weighted = sum(
            values[_CATEGORY_SOURCES.get(category, "content")] * (weight / total_weight)
            for category, weight in weights.items()
        )
        overall = round_half_up(weighted)
    return BlendedScores(scores=adjusted, industry_adjusted_overall=max(1, min(10, overall)))
