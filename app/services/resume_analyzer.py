from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import Field, ValidationError as PydanticValidationError

from app.core.config import Settings, settings as default_settings
from app.core.errors import AnalysisFailed
from app.core.numbers import clamp_score, round_half_up
from app.features.ats_checker import check_ats_compatibility, generate_ats_summary
from app.features.industry import (
    analyze_industry_fit,
    calculate_industry_score,
    detect_industry,
    generate_industry_feedback,
)
from app.parsing.extract import extract_text
from app.parsing.metrics import calculate_basic_metrics
from app.schemas.analysis import (
    AnalysisFeedback,
    AnalysisMetrics,
    AnalysisResult,
    AnalysisSource,
    ATSReport,
    ATSSummary,
    BasicMetrics,
    CriterionScores,
    IndustryFit,
    IndustrySummary,
)
from app.schemas.common import ApiModel
from app.services.llm import json_completion
from app.services.prompts import SYSTEM_PROMPT, build_resume_prompt

logger = logging.getLogger(__name__)

TOP_ATS_RECOMMENDATIONS = 3

_DURATION = re.compile(r"\d+\s*(?:years?|months?)", re.IGNORECASE)
_ACHIEVEMENT_VERBS = re.compile(r"achieved|improved|increased|reduced|managed|led", re.IGNORECASE)

Completion = Callable[..., Any]


class _ModelScores(ApiModel):
    content: float
    structure: float
    formatting: float
    industry_alignment: float
    length: float


class _ModelFeedback(ApiModel):
    strengths: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)
    industry_specific: list[str] = Field(default_factory=list)
    summary: str = ""


class _ModelAnalysis(ApiModel):
    overall_score: float
    scores: _ModelScores
    feedback: _ModelFeedback = Field(default_factory=_ModelFeedback)


@dataclass(frozen=True)
class ScoredResume:
    overall_score: int
    scores: CriterionScores
    feedback: AnalysisFeedback
    source: AnalysisSource


def _strengths(metrics: BasicMetrics) -> list[str]:
    strengths: list[str] = []
    if metrics.sections.experience:
        strengths.append("Includes work experience section")
    if metrics.sections.education:
        strengths.append("Contains education information")
    if metrics.sections.skills:
        strengths.append("Lists relevant skills")
    if metrics.formatting.has_bullet_points:
        strengths.append("Uses bullet points for readability")
    if metrics.estimated_pages <= 2:
        strengths.append("Appropriate length")
    return strengths


def _improvements(metrics: BasicMetrics) -> list[str]:
    improvements: list[str] = []
    if not metrics.sections.summary:
        improvements.append("Consider adding a professional summary")
    if not metrics.sections.skills:
        improvements.append("Add a skills section")
    if not metrics.formatting.has_bullet_points:
        improvements.append("Use bullet points to improve readability")
    if metrics.estimated_pages > 2:
        improvements.append("Consider reducing length to 1-2 pages")
    if metrics.word_count < 200:
        improvements.append("Expand content with more details")
    return improvements


def _length_score(pages: int, fit: IndustryFit) -> int:
    preferred = fit.recommended_length
    if preferred.min <= pages <= preferred.max:
        return 9
    if pages == preferred.max + 1:
        return 7
    if pages > preferred.max + 1:
        return 4
    return 5


def fallback_analysis(text: str, metrics: BasicMetrics, fit: IndustryFit) -> ScoredResume:
    """Rule-based scoring used whenever the model path is unavailable."""
    content = 5
    if metrics.word_count > 200:
        content += 1
    if metrics.word_count > 400:
        content += 1
    if _DURATION.search(text):
        content += 1
    if _ACHIEVEMENT_VERBS.search(text):
        content += 1

    keyword_ratio = len(fit.industry_keywords_found) / max(1, fit.industry_keywords_total)
    alignment = min(10, 3 + round_half_up(keyword_ratio * 7))
    if fit.critical_skills_found:
        alignment += min(2, len(fit.critical_skills_found))

    structure = min(10, 3 + len(metrics.sections_found()))
    if len(fit.sections_found) >= len(fit.sections_required):
        structure += 1

    formatting = 5
    flags = metrics.formatting
    formatting += sum(1 for flag in (flags.has_bullet_points, flags.has_emails, flags.has_phones, flags.has_numbers) if flag)

    scores = CriterionScores(
        content=clamp_score(content),
        structure=clamp_score(structure),
        formatting=clamp_score(formatting),
        industry_alignment=clamp_score(alignment),
        length=clamp_score(_length_score(metrics.estimated_pages, fit)),
    )
    blended = calculate_industry_score(scores, fit)
    industry_feedback = generate_industry_feedback(fit)
    feedback = AnalysisFeedback(
        strengths=_strengths(metrics) + industry_feedback.strengths,
        improvements=_improvements(metrics) + industry_feedback.improvements,
        industry_specific=list(industry_feedback.industry_specific),
        summary=(
            f"Resume scored for {fit.industry_name} industry. "
            f"{metrics.estimated_pages} page(s) with {metrics.word_count} words."
        ),
    )
    return ScoredResume(
        overall_score=blended.industry_adjusted_overall,
        scores=scores,
        feedback=feedback,
        source="fallback",
    )


class ResumeAnalyzer:
    def __init__(self, settings: Settings | None = None, completion: Completion | None = None):
        self.settings = settings or default_settings
        self._completion = completion or json_completion

    def score_with_model(self, text: str, fit: IndustryFit) -> ScoredResume | None:
        payload = self._completion(
            system_prompt=SYSTEM_PROMPT,
            user_prompt=build_resume_prompt(text, fit),
            temperature=0.3,
            max_output_tokens=1000,
            settings=self.settings,
        )
        if payload is None:
            return None
        try:
            parsed = _ModelAnalysis.model_validate(payload)
        except PydanticValidationError as exc:
            logger.warning("llm_analysis_malformed errors=%s", exc.error_count())
            return None
        raw = parsed.scores
        return ScoredResume(
            overall_score=clamp_score(parsed.overall_score),
            scores=CriterionScores(
                content=clamp_score(raw.content),
                structure=clamp_score(raw.structure),
                formatting=clamp_score(raw.formatting),
                industry_alignment=clamp_score(raw.industry_alignment),
                length=clamp_score(raw.length),
            ),
            feedback=AnalysisFeedback(**parsed.feedback.model_dump()),
            source="ai",
        )

    def analyze_text(
        self,
        text: str,
        *,
        industry_fit: IndustryFit | None = None,
        ats_report: ATSReport | None = None,
    ) -> AnalysisResult:
        try:
            return self._analyze_text(text or "", industry_fit=industry_fit, ats_report=ats_report)
        except Exception as exc:
            logger.exception("resume_scoring_failed text_len=%s", len(text or ""))
            raise AnalysisFailed(f"Resume analysis failed: {exc}", details={"cause": type(exc).__name__}) from exc

    def _analyze_text(
        self,
        text: str,
        *,
        industry_fit: IndustryFit | None,
        ats_report: ATSReport | None,
    ) -> AnalysisResult:
        metrics = calculate_basic_metrics(text)
        fit = industry_fit or analyze_industry_fit(text, detect_industry(text))

        scored = self.score_with_model(text, fit)
        if scored is None:
            scored = fallback_analysis(text, metrics, fit)

        ats = ats_report or check_ats_compatibility(text)
        return AnalysisResult(
            overall_score=scored.overall_score,
            scores=scored.scores,
            feedback=scored.feedback,
            metrics=AnalysisMetrics(
                word_count=metrics.word_count,
                estimated_pages=metrics.estimated_pages,
                sections_found=metrics.sections_found(),
            ),
            industry_analysis=IndustrySummary(
                detected_industry=fit.industry_match,
                industry_name=fit.industry_name,
                industry_keywords_found=len(fit.industry_keywords_found),
                critical_skills_found=len(fit.critical_skills_found),
                sections_alignment=f"{len(fit.sections_found)}/{len(fit.sections_required)}",
                recommended_length=fit.recommended_length,
            ),
            ats_compatibility=ATSSummary(
                score=ats.score,
                is_ats_friendly=ats.is_ats_friendly,
                summary=generate_ats_summary(ats),
                recommendations=ats.recommendations[:TOP_ATS_RECOMMENDATIONS],
                detailed_checks=ats.checks,
            ),
            source=scored.source,
        )

    def extract(self, content: bytes, content_type: str) -> str:
        try:
            return extract_text(content, content_type)
        except Exception as exc:
            logger.warning("resume_extraction_failed content_type=%s: %s", content_type, exc)
            raise AnalysisFailed(f"Resume analysis failed: {exc}", details={"cause": type(exc).__name__}) from exc

    def analyze_resume(self, content: bytes, content_type: str) -> AnalysisResult:
        return self.analyze_text(self.extract(content, content_type))
