import math
import unittest

from support import SAMPLE_RESUME, build_pdf

from app.core.errors import AnalysisFailed
from app.features.industry import analyze_industry_fit, calculate_industry_score
from app.parsing.extract import PDF_MIME
from app.parsing.metrics import calculate_basic_metrics
from app.services.resume_analyzer import ResumeAnalyzer, fallback_analysis


def _no_model(**_kwargs):
    return None


class FallbackScoringTests(unittest.TestCase):
    def test_empty_text_yields_valid_scores(self):
        result = ResumeAnalyzer(completion=_no_model).analyze_text("")
        self.assertEqual(result.source, "fallback")
        for value in result.scores.model_dump().values():
            self.assertTrue(1 <= value <= 10)
        self.assertFalse(math.isnan(result.overall_score))
        self.assertTrue(1 <= result.overall_score <= 10)

    def test_overall_score_equals_industry_blend(self):
        fit = analyze_industry_fit(SAMPLE_RESUME, "technology")
        metrics = calculate_basic_metrics(SAMPLE_RESUME)
        scored = fallback_analysis(SAMPLE_RESUME, metrics, fit)
        blended = calculate_industry_score(scored.scores, fit)
        self.assertEqual(scored.overall_score, blended.industry_adjusted_overall)

    def test_length_score_rewards_preferred_range(self):
        fit = analyze_industry_fit(SAMPLE_RESUME, "technology")
        scored = fallback_analysis(SAMPLE_RESUME, calculate_basic_metrics(SAMPLE_RESUME), fit)
        self.assertEqual(scored.scores.length, 9)

    def test_result_carries_industry_and_ats_summaries(self):
        result = ResumeAnalyzer(completion=_no_model).analyze_text(SAMPLE_RESUME)
        self.assertEqual(result.industry_analysis.detected_industry, "technology")
        self.assertEqual(result.industry_analysis.sections_alignment, "2/3")
        self.assertLessEqual(len(result.ats_compatibility.recommendations), 3)
        payload = result.to_api()
        self.assertIn("overallScore", payload)
        self.assertIn("isATSFriendly", payload["atsCompatibility"])


class ModelScoringTests(unittest.TestCase):
    def test_model_scores_are_clamped(self):
        def completion(**_kwargs):
            return {
                "overallScore": 12,
                "scores": {"content": 0, "structure": 7.6, "formatting": 8, "industryAlignment": 11, "length": 6},
                "feedback": {"strengths": ["Clear"], "improvements": [], "industrySpecific": [], "summary": "ok"},
            }

        result = ResumeAnalyzer(completion=completion).analyze_text(SAMPLE_RESUME)
        self.assertEqual(result.source, "ai")
        self.assertEqual(result.overall_score, 10)
        self.assertEqual(result.scores.content, 1)
        self.assertEqual(result.scores.structure, 8)
        self.assertEqual(result.scores.industry_alignment, 10)
        self.assertEqual(result.feedback.strengths, ["Clear"])

    def test_malformed_model_payload_falls_back(self):
        result = ResumeAnalyzer(completion=lambda **_: {"overallScore": "high"}).analyze_text(SAMPLE_RESUME)
        self.assertEqual(result.source, "fallback")

    def test_prompt_embeds_bounded_excerpt(self):
        captured = {}

        def completion(**kwargs):
            captured.update(kwargs)
            return None

        ResumeAnalyzer(completion=completion).analyze_text("x" * 9000)
        self.assertIn("x" * 4000, captured["user_prompt"])
        self.assertNotIn("x" * 4001, captured["user_prompt"])


class FailureTests(unittest.TestCase):
    def test_corrupt_pdf_raises_analysis_failed(self):
        with self.assertRaises(AnalysisFailed):
            ResumeAnalyzer(completion=_no_model).analyze_resume(b"%PDF-1.4 broken", PDF_MIME)

    def test_pdf_round_trip(self):
        result = ResumeAnalyzer(completion=_no_model).analyze_resume(build_pdf(SAMPLE_RESUME), PDF_MIME)
        self.assertIn("experience", result.metrics.sections_found)
        self.assertIn("education", result.metrics.sections_found)


if __name__ == "__main__":
    unittest.main()
