from boaz.crm.surveys.models import SurveyLink, SurveyProgram, SurveyResponse
from boaz.crm.surveys.scoring import build_program_summary, overall_score, round_half_up
from boaz.crm.surveys.service import SurveyService, survey_service

__all__ = [
    "SurveyLink",
    "SurveyProgram",
    "SurveyResponse",
    "build_program_summary",
    "overall_score",
    "round_half_up",
    "SurveyService",
    "survey_service",
]
