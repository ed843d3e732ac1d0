"""Tests for feedback-driven weight nudges."""

from dataclasses import replace

import pytest

from suggestion_engine.feedback.nudge import compute_nudge, contribution_shares
from suggestion_engine.models.domain import (
    FactorKind,
    FactorValue,
    FeedbackAction,
    SuggestionType,
    TypeThreshold,
)


def test_contribution_shares_sum_to_one():
    shares = contribution_shares(
        [(FactorKind.DEMAND, 30.0), (FactorKind.UTILIZATION, -10.0), (FactorKind.HEALTH, 0.0)]
    )
    assert shares == {FactorKind.DEMAND: 0.75, FactorKind.UTILIZATION: 0.25}
    assert contribution_shares([]) == {}


def test_accept_raises_dominant_weight(reposition_profile, suggestion_factory):
    suggestion = suggestion_factory()
    nudged = compute_nudge(reposition_profile, suggestion, FeedbackAction.ACCEPT)

    before = reposition_profile.weights_for(SuggestionType.REPOSITION)
    after = nudged.weights_for(SuggestionType.REPOSITION)
    assert after[FactorKind.DEMAND] == pytest.approx(40.0 + 2.0 * 28.8 / 38.3)
    assert after[FactorKind.UTILIZATION] > before[FactorKind.UTILIZATION]
    assert after[FactorKind.DEMAND] - 40.0 > after[FactorKind.HEALTH] - 15.0


def test_decline_lowers_dominant_weight(reposition_profile, suggestion_factory):
    nudged = compute_nudge(reposition_profile, suggestion_factory(), FeedbackAction.DECLINE)
    assert nudged.weight(SuggestionType.REPOSITION, FactorKind.DEMAND) < 40.0


def test_nudge_does_not_mutate_input_profile(reposition_profile, suggestion_factory):
    compute_nudge(reposition_profile, suggestion_factory(), FeedbackAction.ACCEPT)
    assert reposition_profile.weight(SuggestionType.REPOSITION, FactorKind.DEMAND) == 40.0


def test_repeated_accepts_are_monotonic_and_bounded(reposition_profile, suggestion_factory):
    profile = replace(reposition_profile, weight_bound=45.0)
    suggestion = suggestion_factory()
    history = []
    for _ in range(20):
        profile = compute_nudge(profile, suggestion, FeedbackAction.ACCEPT)
        history.append(profile.weight(SuggestionType.REPOSITION, FactorKind.DEMAND))
    assert history == sorted(history)
    assert history[-1] == 45.0


def test_repeated_declines_are_bounded_below(reposition_profile, suggestion_factory):
    profile = replace(reposition_profile, weight_bound=45.0)
    suggestion = suggestion_factory()
    for _ in range(200):
        profile = compute_nudge(profile, suggestion, FeedbackAction.DECLINE)
    assert profile.weight(SuggestionType.REPOSITION, FactorKind.DEMAND) == -45.0


def test_accept_moves_negative_weight_upward(reposition_profile, suggestion_factory):
    profile = replace(
        reposition_profile,
        weights={SuggestionType.SCHEDULE_MAINTENANCE: {FactorKind.HEALTH: -45.0}},
        thresholds={
            SuggestionType.SCHEDULE_MAINTENANCE: TypeThreshold(20.0, 70.0),
        },
    )
    suggestion = suggestion_factory(
        suggestion_type=SuggestionType.SCHEDULE_MAINTENANCE,
        contributions=[(FactorKind.HEALTH, 45.0)],
        factors=[FactorValue(FactorKind.HEALTH, "failed", -1.0, 1.0)],
    )
    history = []
    for _ in range(3):
        profile = compute_nudge(profile, suggestion, FeedbackAction.ACCEPT)
        history.append(profile.weight(SuggestionType.SCHEDULE_MAINTENANCE, FactorKind.HEALTH))
    assert history == [-43.0, -41.0, -39.0]


def test_accept_lowers_weight_of_factor_that_held_score_down(
    reposition_profile, suggestion_factory
):
    suggestion = suggestion_factory(
        contributions=[(FactorKind.DEMAND, 30.0), (FactorKind.HEALTH, -10.0)],
    )
    nudged = compute_nudge(reposition_profile, suggestion, FeedbackAction.ACCEPT)
    assert nudged.weight(SuggestionType.REPOSITION, FactorKind.DEMAND) == pytest.approx(41.5)
    assert nudged.weight(SuggestionType.REPOSITION, FactorKind.HEALTH) == pytest.approx(14.5)


def test_nudge_needs_no_factor_snapshot(reposition_profile, suggestion_factory):
    with_snapshot = compute_nudge(
        reposition_profile, suggestion_factory(), FeedbackAction.ACCEPT
    )
    without = compute_nudge(
        reposition_profile, suggestion_factory(factors=[]), FeedbackAction.ACCEPT
    )
    assert without.weights == with_snapshot.weights


def test_no_contributions_leaves_profile_unchanged(reposition_profile, suggestion_factory):
    suggestion = suggestion_factory(contributions=[])
    assert compute_nudge(reposition_profile, suggestion, FeedbackAction.ACCEPT) is reposition_profile
