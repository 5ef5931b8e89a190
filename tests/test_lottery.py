"""Unit tests for quota computation and the seeded lottery."""

import pytest

from core import PriorityTier
from tests.helpers import make_participant
from waitlist.lottery import DrawOutcome, SecureLottery, TierQuotas

FIRST, SECOND, THIRD = PriorityTier.FIRST, PriorityTier.SECOND, PriorityTier.THIRD


def _groups(first=0, second=0, third=0):
    groups = {FIRST: [], SECOND: [], THIRD: []}
    next_id = 1
    for tier, count in ((FIRST, first), (SECOND, second), (THIRD, third)):
        for _ in range(count):
            groups[tier].append(make_participant(next_id, tier=tier, order=next_id))
            next_id += 1
    return groups


def _ids(participants):
    return [p.participant_id for p in participants]


def test_legal_quotas_split_capacity():
    quotas = TierQuotas.compute(10, {})
    assert dict(quotas.legal) == {FIRST: 2, SECOND: 1, THIRD: 7}
    assert dict(quotas.remaining) == dict(quotas.legal)


def test_quotas_round_down_and_third_tier_takes_the_rest():
    quotas = TierQuotas.compute(7, {})
    assert dict(quotas.legal) == {FIRST: 1, SECOND: 0, THIRD: 6}


def test_remaining_quota_subtracts_admitted_and_never_goes_negative():
    quotas = TierQuotas.compute(10, {FIRST: 3, SECOND: 1, THIRD: 2})
    assert dict(quotas.remaining) == {FIRST: 0, SECOND: 0, THIRD: 5}


def test_custom_ratios():
    quotas = TierQuotas.compute(20, {}, first_ratio=0.5, second_ratio=0.25)
    assert dict(quotas.legal) == {FIRST: 10, SECOND: 5, THIRD: 5}


def test_generated_seed_is_sha256_hex():
    lottery = SecureLottery()
    seed = lottery.generate_seed()
    assert len(seed) == 64
    int(seed, 16)
    assert lottery.seed == seed
    assert SecureLottery().generate_seed() != seed


def test_same_seed_reproduces_the_draw():
    """Test that a published seed lets anyone re-verify the result."""
    groups = _groups(first=4, second=3, third=9)
    quotas = TierQuotas.compute(10, {})

    first = SecureLottery("fixed-seed").draw(groups, quotas)
    second = SecureLottery("fixed-seed").draw(groups, quotas)

    assert _ids(first.lottery_order) == _ids(second.lottery_order)


def test_every_applicant_appears_once_in_lottery_order():
    groups = _groups(first=3, second=2, third=6)
    outcome = SecureLottery("abc").draw(groups, TierQuotas.compute(5, {}))

    assert sorted(_ids(outcome.lottery_order)) == list(range(1, 12))
    assert sum(len(v) for v in outcome.selected.values()) == 5
    assert len(outcome.not_selected) == 6


def test_unused_seats_flow_down_a_tier():
    """Test that a tier with fewer applicants than seats hands them on."""
    groups = _groups(first=0, second=0, third=5)
    quotas = TierQuotas.compute(10, {})

    outcome = SecureLottery("s").draw(groups, quotas)

    assert outcome.selected[FIRST] == []
    assert outcome.selected[SECOND] == []
    assert len(outcome.selected[THIRD]) == 5
    assert outcome.not_selected == []


def test_applicants_not_drawn_compete_again_in_next_tier():
    groups = _groups(first=3)
    quotas = TierQuotas(
        legal={FIRST: 1, SECOND: 1, THIRD: 0},
        remaining={FIRST: 1, SECOND: 1, THIRD: 0},
    )

    outcome = SecureLottery("cascade").draw(groups, quotas)

    assert len(outcome.selected[FIRST]) == 1
    assert len(outcome.selected[SECOND]) == 1
    assert outcome.selected[SECOND][0].tier is FIRST
    assert len(outcome.not_selected) == 1
    assert outcome.selected_tier_of(outcome.selected[SECOND][0].participant_id) is SECOND


def test_lottery_order_lists_selected_before_the_rest():
    groups = _groups(first=2, second=2, third=2)
    quotas = TierQuotas(
        legal={FIRST: 1, SECOND: 1, THIRD: 1},
        remaining={FIRST: 1, SECOND: 1, THIRD: 1},
    )

    outcome = SecureLottery("order").draw(groups, quotas)

    selected = outcome.selected[FIRST] + outcome.selected[SECOND] + outcome.selected[THIRD]
    assert outcome.lottery_order[:3] == selected
    assert outcome.lottery_order[3:] == outcome.not_selected


def test_no_open_quota_keeps_everyone_waiting():
    groups = _groups(first=1, second=1, third=1)
    quotas = TierQuotas.compute(0, {})

    outcome = SecureLottery("none").draw(groups, quotas)

    assert all(outcome.selected[tier] == [] for tier in PriorityTier)
    assert len(outcome.not_selected) == 3


def test_empty_outcome_has_empty_order():
    assert DrawOutcome().lottery_order == []
    assert DrawOutcome().selected_tier_of(1) is None


@pytest.mark.parametrize("capacity", [1, 3, 10, 33])
def test_legal_quotas_always_sum_to_capacity(capacity):
    quotas = TierQuotas.compute(capacity, {})
    assert sum(quotas.legal.values()) == capacity
