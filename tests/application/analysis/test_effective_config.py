from errata.application.analysis.effective_config import (
    build_effective_config,
    default_status_config,
    dump_analysis_config,
    parse_analysis_config,
)
from errata.domain.analysis.models import AnalysisConfig, StatusConfig
from errata.domain.constants import (
    DEFAULT_EXPECTED_REVIEWS,
    DEFAULT_OUTLIER_PERCENTAGE,
    DEFAULT_PROBLEM_THRESHOLD,
)


def test_default_weights_decrease_with_creation_order():
    defaults = default_status_config(["critico", "reincidente", "normal"])

    assert [defaults[s].weight for s in ["critico", "reincidente", "normal"]] == [2, 1, 0]
    assert all(c.expected_reviews == DEFAULT_EXPECTED_REVIEWS for c in defaults.values())


def test_effective_config_without_stored_config():
    config = build_effective_config(["a", "b"], None)

    assert config.status_config["a"] == StatusConfig(weight=1, expected_reviews=5)
    assert config.problem_threshold == DEFAULT_PROBLEM_THRESHOLD
    assert config.outlier_percentage == DEFAULT_OUTLIER_PERCENTAGE
    assert config.auto_flag_enabled is True


def test_stored_entries_override_defaults_and_new_statuses_get_defaults():
    stored = AnalysisConfig(
        status_config={"a": StatusConfig(weight=7, expected_reviews=2)},
        problem_threshold=3,
        outlier_percentage=25,
        auto_flag_enabled=False,
    )

    config = build_effective_config(["a", "b", "c"], stored)

    assert config.status_config["a"] == StatusConfig(weight=7, expected_reviews=2)
    assert config.status_config["b"] == StatusConfig(weight=1, expected_reviews=5)
    assert config.status_config["c"] == StatusConfig(weight=0, expected_reviews=5)
    assert config.problem_threshold == 3
    assert config.outlier_percentage == 25
    assert config.auto_flag_enabled is False
    # The stored config is left untouched
    assert set(stored.status_config) == {"a"}


def test_stored_entry_for_removed_status_is_kept():
    stored = AnalysisConfig(status_config={"old": StatusConfig(weight=3, expected_reviews=4)})
    config = build_effective_config(["new"], stored)
    assert set(config.status_config) == {"new", "old"}


def test_parse_missing_config():
    assert parse_analysis_config(None) is None
    assert parse_analysis_config({}) is None


def test_parse_fills_missing_scalars():
    config = parse_analysis_config({"status_config": {"a": {"weight": 2, "expected_reviews": 4}}})

    assert config.status_config == {"a": StatusConfig(weight=2, expected_reviews=4)}
    assert config.problem_threshold == DEFAULT_PROBLEM_THRESHOLD
    assert config.outlier_percentage == DEFAULT_OUTLIER_PERCENTAGE
    assert config.auto_flag_enabled is True


def test_parse_drops_malformed_status_entries():
    config = parse_analysis_config(
        {
            "status_config": {
                "ok": {"weight": "1.5"},
                "no_weight": {"expected_reviews": 3},
                "negative": {"weight": -1, "expected_reviews": 3},
                "garbage": "heavy",
            },
            "problem_threshold": "abc",
            "outlier_percentage": 250,
            "auto_flag_enabled": False,
        }
    )

    assert config.status_config == {"ok": StatusConfig(weight=1.5, expected_reviews=5)}
    assert config.problem_threshold == DEFAULT_PROBLEM_THRESHOLD
    assert config.outlier_percentage == DEFAULT_OUTLIER_PERCENTAGE
    assert config.auto_flag_enabled is False


def test_parse_rounds_fractional_expected_reviews(caplog):
    config = parse_analysis_config(
        {
            "status_config": {
                "a": {"weight": 1, "expected_reviews": 3.7},
                "b": {"weight": 1, "expected_reviews": "4"},
            }
        }
    )

    assert config.status_config["a"].expected_reviews == 4
    assert config.status_config["b"].expected_reviews == 4
    assert "Rounding fractional expected_reviews 3.7 to 4" in caplog.text


def test_dump_then_parse_preserves_config():
    config = AnalysisConfig(
        status_config={"a": StatusConfig(weight=2, expected_reviews=4)},
        problem_threshold=6,
        outlier_percentage=20,
        auto_flag_enabled=False,
    )
    assert parse_analysis_config(dump_analysis_config(config)) == config
