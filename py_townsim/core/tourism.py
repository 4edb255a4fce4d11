"""
Tourist fares and distance milestones.

A batch of tourists pays the larger of two fares: a flat per-tourist base
(plus one unit per ``fare_bonus_meters`` once a trip exceeds
``fare_bonus_threshold``) and a distance fare of one unit per
``meters_per_emerald`` travelled by each tourist. Milestones pay the items of
the furthest threshold reached, scaled by the number of tourists.
"""

from typing import List, Optional

import structlog
from pydantic import BaseModel, Field

from ..config import Settings
from ..registry.parsers import parse_item_stack
from .payment_board import RewardItem

logger = structlog.get_logger()


class MilestoneResult(BaseModel):
    distance: float = Field(description="Distance travelled")
    milestone: Optional[int] = Field(default=None, description="Threshold reached, if any")
    rewards: List[RewardItem] = Field(default_factory=list, description="Scaled milestone items")

    def has_rewards(self) -> bool:
        return bool(self.rewards)


def calculate_fare(distance: float, tourist_count: int, settings: Settings) -> int:
    """
    Fare owed for ``tourist_count`` tourists who travelled ``distance``.

    Returns:
        0 when the distance is unknown (zero) or nobody arrived
    """
    if distance <= 0 or tourist_count <= 0:
        return 0

    base = tourist_count * settings.tourist_payment_per_visitor
    if distance > settings.fare_bonus_threshold and settings.fare_bonus_meters > 0:
        base += int(distance / settings.fare_bonus_meters)

    distance_fare = 0
    if settings.meters_per_emerald > 0:
        distance_fare = int(max(1.0, distance / settings.meters_per_emerald * tourist_count))

    return max(base, distance_fare)


def check_milestones(distance: float, tourist_count: int, settings: Settings) -> MilestoneResult:
    """Rewards for the highest milestone ``distance`` reaches."""
    if not settings.enable_milestones or tourist_count <= 0:
        return MilestoneResult(distance=distance)

    reached = [threshold for threshold in settings.milestone_rewards if distance >= threshold]
    if not reached:
        return MilestoneResult(distance=distance)

    milestone = max(reached)
    rewards = []
    for reward in settings.milestone_rewards[milestone]:
        parsed = parse_item_stack(reward)
        if parsed is None:
            continue
        item_id, count = parsed
        rewards.append(RewardItem(item_id=item_id, count=count * tourist_count))

    logger.debug(
        "Milestone reached",
        distance=distance,
        milestone=milestone,
        items=len(rewards),
    )
    return MilestoneResult(distance=distance, milestone=milestone, rewards=rewards)
