from .ats_checker import check_ats_compatibility, generate_ats_recommendations, generate_ats_summary
from .industry import (
    analyze_industry_fit,
    calculate_industry_score,
    detect_industry,
    generate_industry_feedback,
    get_profile,
    load_profiles,
)

__all__ = [
    "check_ats_compatibility",
    "generate_ats_recommendations",
    "generate_ats_summary",
    "analyze_industry_fit",
    "calculate_industry_score",
    "detect_industry",
    "generate_industry_feedback",
    "get_profile",
    "load_profiles",
]
