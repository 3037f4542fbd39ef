from __future__ import annotations

from typing import Literal

from pydantic import ConfigDict, Field

from app.schemas.common import ApiModel

SectionName = Literal["contact", "experience", "education", "skills", "summary"]
AnalysisSource = Literal["ai", "fallback"]
Priority = Literal["High", "Medium", "Low"]


class SectionFlags(ApiModel):
    contact: bool = False
    experience: bool = False
    education: bool = False
    skills: bool = False
    summary: bool = False


class FormattingFlags(ApiModel):
    has_bullet_points: bool = False
    has_numbers: bool = False
    has_emails: bool = False
    has_phones: bool = False


class BasicMetrics(ApiModel):
    word_count: int = 0
    line_count: int = 0
    character_count: int = 0
    estimated_pages: int = 0
    sections: SectionFlags = Field(default_factory=SectionFlags)
    formatting: FormattingFlags = Field(default_factory=FormattingFlags)

    def sections_found(self) -> list[str]:
        return [name for name, present in self.sections.model_dump().items() if present]


class LengthRange(ApiModel):
    min: int
    max: int


class IndustryProfile(ApiModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    keywords: tuple[str, ...] = ()
    required_sections: tuple[str, ...] = ()
    scoring_weights: dict[str, float] = Field(default_factory=dict)
    critical_skills: tuple[str, ...] = ()
    preferred_length: LengthRange
    tips: tuple[str, ...] = ()


class IndustryFit(ApiModel):
    industry_match: str
    industry_name: str
    sections_found: list[str] = Field(default_factory=list)
    sections_required: list[str] = Field(default_factory=list)
    critical_skills_found: list[str] = Field(default_factory=list)
    critical_skills_required: list[str] = Field(default_factory=list)
    industry_keywords_found: list[str] = Field(default_factory=list)
    industry_keywords_total: int = 0
    scoring_weights: dict[str, float] = Field(default_factory=dict)
    recommended_length: LengthRange


class IndustryFeedback(ApiModel):
    strengths: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)
    industry_specific: list[str] = Field(default_factory=list)


class CriterionScores(ApiModel):
    content: int = Field(ge=1, le=10)
    structure: int = Field(ge=1, le=10)
    formatting: int = Field(ge=1, le=10)
    industry_alignment: int = Field(ge=1, le=10)
    length: int = Field(ge=1, le=10)


class BlendedScores(ApiModel):
    scores: CriterionScores
    industry_adjusted_overall: int


class ATSCheck(ApiModel):
    score: int = Field(ge=1, le=10)
    issues: list[str] = Field(default_factory=list)
    passed: bool


class KeywordCheck(ATSCheck):
    keyword_density: float
    found_keywords: int
    total_keywords: int


class StructureCheck(ATSCheck):
    sections_found: int
    sections_expected: int


class ReadabilityCheck(ATSCheck):
    avg_sentence_length: int
    action_verbs_found: int
    quantifiable_metrics: int


class FileFormatCheck(ATSCheck):
    format: str
    recommendation: str


class ATSChecks(ApiModel):
    formatting: ATSCheck
    keywords: KeywordCheck
    structure: StructureCheck
    readability: ReadabilityCheck
    file_format: FileFormatCheck

    def all(self) -> list[ATSCheck]:
        return [self.formatting, self.keywords, self.structure, self.readability, self.file_format]


class ATSRecommendation(ApiModel):
    category: str
    priority: Priority
    suggestions: list[str]


class ATSReport(ApiModel):
    score: int
    checks: ATSChecks
    recommendations: list[ATSRecommendation] = Field(default_factory=list)
    is_ats_friendly: bool = Field(alias="isATSFriendly")


class AnalysisFeedback(ApiModel):
    strengths: list[str] = Field(default_factory=list)
    improvements: list[str] = Field(default_factory=list)
    industry_specific: list[str] = Field(default_factory=list)
    summary: str = ""


class AnalysisMetrics(ApiModel):
    word_count: int
    estimated_pages: int
    sections_found: list[str] = Field(default_factory=list)


class IndustrySummary(ApiModel):
    detected_industry: str
    industry_name: str
    industry_keywords_found: int
    critical_skills_found: int
    sections_alignment: str
    recommended_length: LengthRange


class ATSSummary(ApiModel):
    score: int
    is_ats_friendly: bool = Field(alias="isATSFriendly")
    summary: str
    recommendations: list[ATSRecommendation] = Field(default_factory=list)
    detailed_checks: ATSChecks


class AnalysisResult(ApiModel):
    model_config = ConfigDict(frozen=True)

    overall_score: int = Field(ge=1, le=10)
    scores: CriterionScores
    feedback: AnalysisFeedback
    metrics: AnalysisMetrics
    industry_analysis: IndustrySummary
    ats_compatibility: ATSSummary
    source: AnalysisSource = "fallback"
    cached: bool = False
    cache_timestamp: float | None = None
