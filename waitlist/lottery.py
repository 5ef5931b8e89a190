"""Priority grouping and the seeded, quota-based admission lottery."""

from __future__ import annotations

import hashlib
import math
import os
import random
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Mapping, Optional

import aiosqlite

from core import LotteryDefaults, PriorityTier, get_logger
from database.models import Participant
from database.repositories import ParticipantRepository

logger = get_logger(__name__)


class LotteryGrouping:
    """Splits an institution's waitlist into priority tiers."""

    async def group_by_priority(
        self,
        institution_id: int,
        conn: Optional[aiosqlite.Connection] = None,
    ) -> Dict[PriorityTier, List[Participant]]:
        """Waiting children per tier, each tier in ascending current order.

        Every tier key is present, possibly with an empty list.
        """
        groups: Dict[PriorityTier, List[Participant]] = {tier: [] for tier in PriorityTier}
        for participant in await ParticipantRepository.load_waiting_by_priority(institution_id, conn):
            groups[participant.tier].append(participant)
        return groups


@dataclass(frozen=True)
class TierQuotas:
    """Legal seats per tier and how many of them are still open."""
    legal: Mapping[PriorityTier, int]
    remaining: Mapping[PriorityTier, int]

    @classmethod
    def compute(
        cls,
        total_capacity: int,
        admitted: Mapping[PriorityTier, int],
        first_ratio: float = LotteryDefaults.FIRST_PRIORITY_QUOTA_RATIO,
        second_ratio: float = LotteryDefaults.SECOND_PRIORITY_QUOTA_RATIO,
    ) -> "TierQuotas":
        first = math.floor(total_capacity * first_ratio)
        second = math.floor(total_capacity * second_ratio)
        legal = {
            PriorityTier.FIRST: first,
            PriorityTier.SECOND: second,
            PriorityTier.THIRD: total_capacity - first - second,
        }
        remaining = {tier: max(0, legal[tier] - admitted.get(tier, 0)) for tier in PriorityTier}
        return cls(legal=legal, remaining=remaining)


@dataclass
class DrawOutcome:
    """Result of drawing lots; ``lottery_order`` lists selected first, then the rest."""
    selected: Dict[PriorityTier, List[Participant]] = field(default_factory=dict)
    not_selected: List[Participant] = field(default_factory=list)

    @property
    def lottery_order(self) -> List[Participant]:
        ordered: List[Participant] = []
        for tier in PriorityTier:
            ordered.extend(self.selected.get(tier, []))
        ordered.extend(self.not_selected)
        return ordered

    def selected_tier_of(self, participant_id: int) -> Optional[PriorityTier]:
        for tier, participants in self.selected.items():
            if any(p.participant_id == participant_id for p in participants):
                return tier
        return None


class SecureLottery:
    """Deterministic lottery over priority tiers.

    The seed is a SHA-256 digest; the same seed over the same groups always
    yields the same draw, so results can be re-verified afterwards.
    """

    def __init__(self, seed: Optional[str] = None) -> None:
        self.seed: Optional[str] = seed
        self._random_bytes_size = LotteryDefaults.SEED_RANDOM_BYTES

    def generate_seed(self) -> str:
        """Generate cryptographically secure seed for the draw.

        Returns:
            str: SHA-256 hex digest of timestamp and random bytes
        """
        timestamp = datetime.now(timezone.utc).isoformat()
        random_bytes = os.urandom(self._random_bytes_size)
        combined = f"{timestamp}{random_bytes.hex()}"
        self.seed = hashlib.sha256(combined.encode()).hexdigest()

        logger.info(f"Generated new lottery seed: {self.seed[:16]}...")
        return self.seed

    def _rng(self) -> random.Random:
        if self.seed is None:
            self.generate_seed()
        digest = hashlib.sha256(self.seed.encode()).hexdigest()
        return random.Random(int(digest, 16))

    def draw(
        self,
        groups: Mapping[PriorityTier, List[Participant]],
        quotas: TierQuotas,
    ) -> DrawOutcome:
        """Draw lots tier by tier.

        Applicants not drawn in a tier compete again in the next tier's
        pool, and seats a tier leaves unused are added to the next tier.
        Whoever is not drawn in the third tier stays on the waitlist.
        """
        rng = self._rng()
        outcome = DrawOutcome()
        carried_over: List[Participant] = []
        unused_seats = 0

        for tier in PriorityTier:
            pool = list(groups.get(tier, [])) + carried_over
            available = quotas.remaining.get(tier, 0) + unused_seats

            if available <= 0:
                outcome.selected[tier] = []
                carried_over = pool
                unused_seats = 0
                continue

            rng.shuffle(pool)
            outcome.selected[tier] = pool[:available]
            carried_over = pool[available:]
            unused_seats = available - len(outcome.selected[tier])

        # The last pool is shuffled already, or kept in arrival order when no seat was left
        outcome.not_selected = carried_over
        logger.info(
            f"Lottery drawn seed={self.seed[:16]} "
            + " ".join(f"tier{tier.value}={len(outcome.selected[tier])}" for tier in PriorityTier)
            + f" not_selected={len(outcome.not_selected)}"
        )
        return outcome
