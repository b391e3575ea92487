# Application Analysis Package
from .effective_config import build_effective_config, parse_analysis_config
from .problem_index import (
    AnalysisResult,
    ProblemIndexAnalyzer,
    ScoredCard,
    problematic_card_ids,
)
from .regression import RegressionDiagnostic, compute_regression
from .service import AnalysisService

__all__ = [
    "ProblemIndexAnalyzer",
    "AnalysisResult",
    "problematic_card_ids",
    "ScoredCard",
    "RegressionDiagnostic",
    "compute_regression",
    "build_effective_config",
    "parse_analysis_config",
    "AnalysisService",
]
