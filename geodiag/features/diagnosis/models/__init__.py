from geodiag.features.diagnosis.models.analysis_result import AnalysisResult
from geodiag.features.diagnosis.models.profile import Profile

__all__ = ["AnalysisResult", "Profile"]
