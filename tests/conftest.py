from datetime import datetime, timezone

import pytest
import yaml

from errata.domain.analysis.models import AnalysisConfig, ErrorCard, StatusConfig


@pytest.fixture
def make_card():
    """Factory for ErrorCard with only the fields a test cares about."""

    def _make(card_id="c1", review_count=1, status="normal", **kwargs) -> ErrorCard:
        return ErrorCard(id=card_id, review_count=review_count, status_name=status, **kwargs)

    return _make


@pytest.fixture
def config():
    """Two statuses: 'critico' weighs 2 after 3 reviews, 'normal' weighs 1 after 5."""
    return AnalysisConfig(
        status_config={
            "critico": StatusConfig(weight=2, expected_reviews=3),
            "normal": StatusConfig(weight=1, expected_reviews=5),
        },
        problem_threshold=10,
        outlier_percentage=50,
        auto_flag_enabled=False,
    )


@pytest.fixture
def snapshot_file(tmp_path):
    """A snapshot with one user, three cards and a stored config."""
    path = tmp_path / "snapshot.yaml"
    data = {
        "users": {
            "u1": {
                "statuses": ["critico", "normal"],
                "analysis_config": {
                    "status_config": {"critico": {"weight": 2, "expected_reviews": 3}},
                    "problem_threshold": 4,
                    "outlier_percentage": 50,
                    "auto_flag_enabled": False,
                },
                "cards": [
                    {
                        "id": "a",
                        "review_count": 9,
                        "status_name": "critico",
                        "subject_id": "math",
                        "subject_name": "Math",
                        "created_at": datetime(2026, 10, 13, 9, 0, tzinfo=timezone.utc).isoformat(),
                    },
                    {
                        "id": "b",
                        "review_count": 2,
                        "status_name": "normal",
                        "subject_id": "bio",
                        "needs_intervention": True,
                    },
                    {"id": "c", "review_count": 0, "status_name": "normal", "subject_id": "math"},
                ],
            }
        }
    }
    path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    return path


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()

    # Mocking HOME to a temp directory to isolate config
    monkeypatch.setenv("HOME", str(home))
    return home
