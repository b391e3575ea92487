"""
Repository Factory
Centralizes the logic for selecting the persistence adapter.
"""

from errata.application.analysis.service import AnalysisService
from errata.application.config import AppConfig
from errata.domain.analysis.ports import (
    CardRepository,
    PreferencesRepository,
    ReviewSessionRepository,
)
from errata.domain.errors import ConfigurationError
from errata.infrastructure.adapters.snapshot import SnapshotRepository
from errata.infrastructure.adapters.supabase_rest import SupabaseRepository


def get_repositories(
    config: AppConfig,
) -> tuple[CardRepository, PreferencesRepository, ReviewSessionRepository]:
    """
    Returns the (cards, preferences, sessions) repositories for the configured backend.
    """
    if config.backend == "supabase":
        if not config.supabase_url or not config.supabase_key:
            raise ConfigurationError(
                "backend 'supabase' needs ERRATA_SUPABASE_URL and ERRATA_SUPABASE_KEY"
            )
        repo = SupabaseRepository(
            config.supabase_url, config.supabase_key, timeout=config.request_timeout
        )
        return repo, repo, repo

    snapshot = SnapshotRepository(config.snapshot_path)
    return snapshot, snapshot, snapshot


def get_analysis_service(config: AppConfig) -> AnalysisService:
    """
    Builds the service over the configured backend.

    The caller owns the service and must ``await service.close()`` when done.
    """
    cards, preferences, sessions = get_repositories(config)
    return AnalysisService(cards=cards, preferences=preferences, sessions=sessions)
