from unittest.mock import AsyncMock

import pytest

from errata.application.analysis.service import AnalysisService
from errata.domain.analysis.models import AnalysisConfig, ReviewSession, StatusConfig
from errata.domain.errors import (
    ConfigurationError,
    MissingIdentifierError,
    NotFoundError,
    RepositoryError,
)


@pytest.fixture
def cards_repo():
    repo = AsyncMock()
    repo.fetch_cards.return_value = []
    repo.set_intervention.return_value = 0
    return repo


@pytest.fixture
def prefs_repo():
    repo = AsyncMock()
    repo.fetch_statuses.return_value = ["critico", "normal"]
    repo.fetch_analysis_config.return_value = None
    return repo


@pytest.fixture
def service(cards_repo, prefs_repo):
    return AnalysisService(cards=cards_repo, preferences=prefs_repo)


@pytest.fixture
def sessions_repo():
    repo = AsyncMock()
    repo.fetch_active_session.return_value = None
    repo.fetch_session.return_value = ReviewSession(
        id="s1", user_id="u1", card_ids=["a", "b"], reviewed_card_ids=["a"]
    )
    repo.create_session.side_effect = lambda user_id, card_ids, filters: ReviewSession(
        id="s2", user_id=user_id, card_ids=card_ids, filters=filters
    )
    return repo


@pytest.fixture
def session_service(cards_repo, prefs_repo, sessions_repo):
    return AnalysisService(cards=cards_repo, preferences=prefs_repo, sessions=sessions_repo)


@pytest.mark.asyncio
async def test_analyze_uses_effective_config(service, cards_repo, prefs_repo, make_card):
    cards_repo.fetch_cards.return_value = [make_card("a", 8, "critico")]

    result = await service.analyze("u1", subject_id="s1")

    cards_repo.fetch_cards.assert_awaited_once_with("u1", subject_id="s1", only_flagged=False)
    # Default weight for the first of two statuses is 1; 8 - 5 excess reviews
    assert result.cards[0].problem_index == 3
    assert result.config.status_config["normal"].weight == 0
    assert result.statuses == ["critico", "normal"]


@pytest.mark.asyncio
async def test_analyze_persists_auto_flags(service, cards_repo, prefs_repo, make_card):
    prefs_repo.fetch_analysis_config.return_value = AnalysisConfig(
        status_config={"critico": StatusConfig(weight=1, expected_reviews=1)},
        problem_threshold=5,
        outlier_percentage=100,
        auto_flag_enabled=True,
    )
    cards_repo.fetch_cards.return_value = [
        make_card("hot", 11, "critico"),
        make_card("already", 11, "critico", needs_intervention=True),
        make_card("cold", 2, "critico"),
    ]

    result = await service.analyze("u1")

    assert result.auto_flag_candidates == ["hot"]
    cards_repo.set_intervention.assert_awaited_once_with("u1", ["hot"], True)


@pytest.mark.asyncio
async def test_analyze_skips_write_when_auto_flag_disabled(service, cards_repo, prefs_repo, make_card):
    prefs_repo.fetch_analysis_config.return_value = AnalysisConfig(
        status_config={"critico": StatusConfig(weight=1, expected_reviews=1)},
        problem_threshold=5,
        outlier_percentage=100,
        auto_flag_enabled=False,
    )
    cards_repo.fetch_cards.return_value = [make_card("hot", 11, "critico")]

    await service.analyze("u1")

    cards_repo.set_intervention.assert_not_awaited()


@pytest.mark.asyncio
async def test_analyze_requires_user_id(service, cards_repo):
    with pytest.raises(MissingIdentifierError):
        await service.analyze("")
    with pytest.raises(MissingIdentifierError):
        await service.analyze(None)
    cards_repo.fetch_cards.assert_not_awaited()


@pytest.mark.asyncio
async def test_analyze_propagates_repository_failure(service, prefs_repo):
    prefs_repo.fetch_analysis_config.side_effect = RepositoryError("connection refused")

    with pytest.raises(RepositoryError, match="connection refused"):
        await service.analyze("u1")


@pytest.mark.asyncio
async def test_set_critical_flag(service, cards_repo):
    cards_repo.set_intervention.return_value = 2

    updated = await service.set_critical_flag("u1", ["a", "b"], False)

    assert updated == 2
    cards_repo.set_intervention.assert_awaited_once_with("u1", ["a", "b"], False)


@pytest.mark.asyncio
async def test_set_critical_flag_rejects_empty_ids(service, cards_repo):
    with pytest.raises(MissingIdentifierError):
        await service.set_critical_flag("u1", [], True)
    with pytest.raises(MissingIdentifierError):
        await service.set_critical_flag(None, ["a"], True)
    cards_repo.set_intervention.assert_not_awaited()


@pytest.mark.asyncio
async def test_mark_reviewed(service, cards_repo):
    await service.mark_reviewed("card-9")
    cards_repo.increment_review.assert_awaited_once_with("card-9")

    with pytest.raises(MissingIdentifierError):
        await service.mark_reviewed("")


@pytest.mark.asyncio
async def test_get_and_save_config(service, prefs_repo):
    stored = AnalysisConfig(status_config={"critico": StatusConfig(weight=9, expected_reviews=2)})
    prefs_repo.fetch_analysis_config.return_value = stored
    prefs_repo.save_analysis_config.return_value = stored

    effective = await service.get_config("u1")
    assert effective.status_config["critico"].weight == 9
    assert effective.status_config["normal"].weight == 0

    saved = await service.save_config("u1", stored)
    assert saved is stored
    prefs_repo.save_analysis_config.assert_awaited_once_with("u1", stored)


# --- Resource handling ---


@pytest.mark.asyncio
async def test_close_closes_each_repository_once(cards_repo, prefs_repo):
    await AnalysisService(cards=cards_repo, preferences=prefs_repo).close()
    cards_repo.close.assert_awaited_once()
    prefs_repo.close.assert_awaited_once()

    shared = AsyncMock()
    await AnalysisService(cards=shared, preferences=shared, sessions=shared).close()
    shared.close.assert_awaited_once()


# --- Review sessions ---


@pytest.mark.asyncio
async def test_start_session_queues_problematic_cards(
    session_service, cards_repo, prefs_repo, sessions_repo, make_card
):
    prefs_repo.fetch_analysis_config.return_value = AnalysisConfig(
        status_config={"critico": StatusConfig(weight=1, expected_reviews=1)},
        problem_threshold=5,
        outlier_percentage=100,
        auto_flag_enabled=False,
    )
    cards_repo.fetch_cards.return_value = [
        make_card("hot", 11, "critico"),
        make_card("cold", 2, "critico"),
        make_card("flagged", 1, "normal", needs_intervention=True),
    ]

    session = await session_service.start_session("u1", filters={"subject_id": "s1"})

    cards_repo.fetch_cards.assert_awaited_once_with("u1", subject_id="s1", only_flagged=False)
    sessions_repo.cancel_active_sessions.assert_awaited_once_with("u1")
    sessions_repo.create_session.assert_awaited_once_with(
        "u1", ["hot", "flagged"], {"subject_id": "s1", "source": "problematic"}
    )
    assert session.card_ids == ["hot", "flagged"]


@pytest.mark.asyncio
async def test_start_session_with_explicit_cards_skips_analysis(
    session_service, cards_repo, sessions_repo
):
    session = await session_service.start_session("u1", ["x", "y"])

    cards_repo.fetch_cards.assert_not_awaited()
    assert session.card_ids == ["x", "y"]
    assert session.filters == {}


@pytest.mark.asyncio
async def test_start_session_without_problematic_cards(session_service, sessions_repo):
    with pytest.raises(MissingIdentifierError):
        await session_service.start_session("u1")
    sessions_repo.cancel_active_sessions.assert_not_awaited()
    sessions_repo.create_session.assert_not_awaited()


@pytest.mark.asyncio
async def test_record_session_review_completes_on_last_card(
    session_service, cards_repo, sessions_repo
):
    session = await session_service.record_session_review("s1", "b")

    cards_repo.increment_review.assert_awaited_once_with("b")
    sessions_repo.update_session.assert_awaited_once_with(
        "s1", reviewed_card_ids=["a", "b"], status="completed"
    )
    assert session.status == "completed"
    assert session.remaining_card_ids == []


@pytest.mark.asyncio
async def test_record_session_review_ignores_repeat(session_service, cards_repo, sessions_repo):
    session = await session_service.record_session_review("s1", "a")

    cards_repo.increment_review.assert_not_awaited()
    sessions_repo.update_session.assert_not_awaited()
    assert session.status == "in_progress"


@pytest.mark.asyncio
async def test_complete_and_cancel_session(session_service, sessions_repo):
    assert (await session_service.complete_session("s1")).status == "completed"
    sessions_repo.update_session.assert_awaited_with("s1", status="completed")

    assert (await session_service.cancel_session("s1")).status == "cancelled"
    sessions_repo.update_session.assert_awaited_with("s1", status="cancelled")


@pytest.mark.asyncio
async def test_unknown_session(session_service, sessions_repo):
    sessions_repo.fetch_session.return_value = None

    with pytest.raises(NotFoundError):
        await session_service.cancel_session("nope")
    with pytest.raises(MissingIdentifierError):
        await session_service.record_session_review("s1", None)


@pytest.mark.asyncio
async def test_sessions_need_a_repository(service):
    with pytest.raises(ConfigurationError):
        await service.active_session("u1")
