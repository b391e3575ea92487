# Domain Analysis Package
from .models import AnalysisConfig, ErrorCard, ReviewSession, StatusConfig
from .ports import CardRepository, PreferencesRepository, ReviewSessionRepository

__all__ = [
    "ErrorCard",
    "StatusConfig",
    "AnalysisConfig",
    "ReviewSession",
    "CardRepository",
    "PreferencesRepository",
    "ReviewSessionRepository",
]
