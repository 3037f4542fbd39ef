from __future__ import annotations

from app.schemas.analysis import IndustryFit

EXCERPT_CHARS = 4000

SYSTEM_PROMPT = "You are an experienced recruiter who scores resumes. Reply with a single JSON object."

_RESUME_PROMPT = """
Analyze this resume for the {industry} industry and provide a detailed evaluation. Rate it out of 10 and provide specific feedback.

Industry Context: {industry}
Required Sections: {required_sections}
Critical Skills: {critical_skills}

Resume Text:
{excerpt} {ellipsis}

Please evaluate based on:
1. Content Quality (relevant experience, achievements, skills for {industry})
2. Structure & Organization (clear sections, logical flow)
3. Formatting & Presentation (professional appearance, readability)
4. Industry Alignment ({industry}-specific requirements)
5. Length Appropriateness (optimal page count for {industry})

Consider these industry-specific factors:
- Industry keywords found: {keywords_found}
- Critical skills present: {skills_found}
- Required sections found: {sections_found}

Provide your response in this JSON format:
{{
  "overallScore": number (1-10),
  "scores": {{
    "content": number (1-10),
    "structure": number (1-10),
    "formatting": number (1-10),
    "industryAlignment": number (1-10),
    "length": number (1-10)
  }},
  "feedback": {{
    "strengths": ["strength1", "strength2"],
    "improvements": ["improvement1", "improvement2"],
    "industrySpecific": ["industry tip1", "industry tip2"],
    "summary": "brief overall assessment"
  }}
}}
"""


def build_resume_prompt(text: str, fit: IndustryFit) -> str:
    return _RESUME_PROMPT.format(
        industry=fit.industry_name,
        required_sections=", ".join(fit.sections_required),
        critical_skills=", ".join(fit.critical_skills_required),
        excerpt=text[:EXCERPT_CHARS],
        ellipsis="..." if len(text) > EXCERPT_CHARS else "",
        keywords_found=", ".join(fit.industry_keywords_found),
        skills_found=", ".join(fit.critical_skills_found),
        sections_found=", ".join(fit.sections_found),
    )
