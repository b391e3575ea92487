from pathlib import Path

import pytest

from errata.application.analysis.service import AnalysisService
from errata.application.config import AppConfig, resolve_config
from errata.application.factory import get_analysis_service, get_repositories
from errata.domain.errors import ConfigurationError
from errata.infrastructure.adapters.snapshot import SnapshotRepository
from errata.infrastructure.adapters.supabase_rest import SupabaseRepository


def test_resolve_config_defaults(mock_home):
    config = resolve_config()
    assert config.backend == "snapshot"
    assert config.snapshot_path.name == "snapshot.yaml"


def test_env_overrides(mock_home, monkeypatch):
    monkeypatch.setenv("ERRATA_BACKEND", "supabase")
    monkeypatch.setenv("ERRATA_SUPABASE_URL", "https://x.supabase.co/")
    monkeypatch.setenv("ERRATA_SUPABASE_KEY", "secret")

    config = resolve_config()

    assert config.backend == "supabase"
    assert config.supabase_url == "https://x.supabase.co"
    assert config.supabase_key == "secret"


def test_explicit_overrides_beat_env_and_ignore_none(mock_home, monkeypatch, tmp_path):
    monkeypatch.setenv("ERRATA_PORT", "9000")

    config = resolve_config({"port": 9100, "backend": None, "snapshot_path": tmp_path / "s.yaml"})

    assert config.port == 9100
    assert config.backend == "snapshot"
    assert config.snapshot_path == (tmp_path / "s.yaml").resolve()


def test_factory_snapshot(tmp_path):
    cards, prefs, sessions = get_repositories(AppConfig(snapshot_path=tmp_path / "s.yaml"))
    assert isinstance(cards, SnapshotRepository)
    assert cards is prefs is sessions


def test_factory_supabase():
    config = AppConfig(backend="supabase", supabase_url="https://x.supabase.co", supabase_key="k")
    cards, _, sessions = get_repositories(config)
    assert isinstance(cards, SupabaseRepository)
    assert cards.base_url == "https://x.supabase.co/rest/v1"
    assert sessions is cards


def test_factory_supabase_requires_credentials():
    with pytest.raises(ConfigurationError):
        get_repositories(AppConfig(backend="supabase"))


def test_get_analysis_service(tmp_path):
    service = get_analysis_service(AppConfig(snapshot_path=Path(tmp_path / "s.yaml")))
    assert isinstance(service, AnalysisService)


def test_log_level_is_optional_and_case_insensitive(mock_home, monkeypatch):
    assert resolve_config().log_level is None

    monkeypatch.setenv("ERRATA_LOG_LEVEL", "warning")
    assert resolve_config().log_level == "WARNING"
