import unittest

from support import SAMPLE_RESUME

from app.features.ats_checker import (
    check_ats_compatibility,
    check_formatting,
    check_keywords,
    check_structure,
    generate_ats_summary,
)


def _bulleted(count: int) -> str:
    return "\n".join(f"• Delivered item {index}" for index in range(count))


class FormattingCheckTests(unittest.TestCase):
    def test_plain_ascii_text_scores_ten(self):
        result = check_formatting("Experience\nBuilt things at Acme Corp.")
        self.assertEqual(result.score, 10)
        self.assertTrue(result.passed)

    def test_excessive_bullets_cost_exactly_one_point(self):
        baseline = check_formatting(_bulleted(15))
        excessive = check_formatting(_bulleted(25))
        self.assertEqual(baseline.score - excessive.score, 1)
        self.assertIn("Excessive use of special bullet points", excessive.issues)
        self.assertNotIn("Excessive use of special bullet points", baseline.issues)

    def test_wide_spacing_flags_tables(self):
        result = check_formatting("Name        Title")
        self.assertIn("May contain table formatting that ATS cannot read", result.issues)


class KeywordAndStructureTests(unittest.TestCase):
    def test_keyword_stuffing_is_penalized(self):
        result = check_keywords("experience skills education work job team")
        self.assertIn("Possible keyword stuffing detected", result.issues)

    def test_empty_text_is_still_scored(self):
        result = check_keywords("")
        self.assertEqual(result.score, 1)
        self.assertEqual(result.found_keywords, 0)

    def test_ascending_years_suggest_reverse_chronology(self):
        text = "Summary\nExperience\nEducation\n2015 first job\n2020 second job"
        result = check_structure(text)
        self.assertIn("Consider reverse chronological order for work experience", result.issues)


class CompatibilityReportTests(unittest.TestCase):
    def test_report_shape_and_general_tips_last(self):
        report = check_ats_compatibility(SAMPLE_RESUME)
        self.assertTrue(1 <= report.score <= 10)
        self.assertEqual(report.is_ats_friendly, report.score >= 7)
        self.assertEqual(report.recommendations[-1].category, "General ATS Tips")
        self.assertEqual(len(report.checks.all()), 5)

    def test_camel_case_api_shape(self):
        payload = check_ats_compatibility(SAMPLE_RESUME).to_api()
        self.assertIn("isATSFriendly", payload)
        self.assertIn("fileFormat", payload["checks"])

    def test_empty_text_produces_a_valid_report(self):
        report = check_ats_compatibility("")
        self.assertTrue(1 <= report.score <= 10)
        self.assertIn("Passed", generate_ats_summary(report))


if __name__ == "__main__":
    unittest.main()
