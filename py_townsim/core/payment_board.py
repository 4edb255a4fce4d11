"""
Town payment board: timestamped reward entries plus communal buffer storage.

Reward lifecycle::

    UNCLAIMED --claim--> CLAIMED   (terminal)
    UNCLAIMED --time---> EXPIRED   (terminal, evaluated lazily on access)

``claim`` is the only UNCLAIMED -> CLAIMED transition. A repeated claim of
the same id fails on the status check, so rewards are never granted twice.
"""

import math
import uuid
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import structlog
from pydantic import BaseModel, Field

from ..config import Settings, get_settings
from ..registry.parsers import normalize_item_id
from ..utils.clock import Clock, days_to_millis, now_millis
from .results import ClaimError, ClaimErrorCode, Result
from .storage import StockLedger

logger = structlog.get_logger()

ELIGIBILITY_ALL = "ALL"


class RewardSource(str, Enum):
    """Origin category of a reward."""

    TOURIST_ARRIVAL = "TOURIST_ARRIVAL"
    TOURIST_PAYMENT = "TOURIST_PAYMENT"
    MILESTONE = "MILESTONE"
    COURIER_PICKUP = "COURIER_PICKUP"
    COURIER_DELIVERY = "COURIER_DELIVERY"
    OTHER = "OTHER"


class ClaimStatus(str, Enum):
    UNCLAIMED = "UNCLAIMED"
    CLAIMED = "CLAIMED"
    EXPIRED = "EXPIRED"


class ClaimDestination(str, Enum):
    """Where claimed items go."""

    BUFFER = "BUFFER"
    DIRECT = "DIRECT"


class RewardItem(BaseModel):
    item_id: str = Field(description="Item identifier")
    count: int = Field(gt=0, description="Quantity")


class RewardEntry(BaseModel):
    """A claimable, time-bounded grant of items."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()), description="Unique id")
    timestamp: int = Field(description="Creation time (ms)")
    expiration_time: int = Field(description="Expiry time (ms)")
    source: RewardSource = Field(default=RewardSource.OTHER, description="Origin category")
    rewards: List[RewardItem] = Field(default_factory=list, description="Granted items")
    status: ClaimStatus = Field(default=ClaimStatus.UNCLAIMED, description="Lifecycle state")
    eligibility: str = Field(default=ELIGIBILITY_ALL, description="Actor/group restriction")
    metadata: Dict[str, str] = Field(default_factory=dict, description="Extensible tags")

    def is_expired(self, now: int) -> bool:
        return now > self.expiration_time

    def refresh_status(self, now: int) -> ClaimStatus:
        """Apply the lazy UNCLAIMED -> EXPIRED transition."""
        if self.status == ClaimStatus.UNCLAIMED and self.is_expired(now):
            self.status = ClaimStatus.EXPIRED
        return self.status

    def is_eligible(self, claimer_eligibility: Optional[str]) -> bool:
        return self.eligibility == ELIGIBILITY_ALL or self.eligibility == claimer_eligibility

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp,
            "expirationTime": self.expiration_time,
            "source": self.source.value,
            "status": self.status.value,
            "eligibility": self.eligibility,
            "rewards": [{"item": r.item_id, "count": r.count} for r in self.rewards],
            "metadata": dict(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional["RewardEntry"]:
        """Rebuild an entry; returns None (after logging) if the record is unusable."""
        if not isinstance(data, dict):
            logger.warning("Skipping non-mapping reward entry", entry=repr(data))
            return None
        try:
            source_name = data.get("source", RewardSource.OTHER.value)
            try:
                source = RewardSource(source_name)
            except ValueError:
                logger.warning("Unknown reward source, defaulting to OTHER", source=source_name)
                source = RewardSource.OTHER

            status_name = data.get("status", ClaimStatus.UNCLAIMED.value)
            try:
                status = ClaimStatus(status_name)
            except ValueError:
                logger.warning("Unknown claim status, defaulting to UNCLAIMED", status=status_name)
                status = ClaimStatus.UNCLAIMED

            metadata = data.get("metadata") or {}
            if not isinstance(metadata, dict):
                logger.warning("Ignoring invalid reward metadata", reward_id=data.get("id"))
                metadata = {}

            rewards = []
            for raw in data.get("rewards", []):
                if not isinstance(raw, dict):
                    logger.warning("Skipping invalid reward item", item=repr(raw))
                    continue
                item_id = normalize_item_id(raw.get("item"))
                count = int(raw.get("count", 0))
                if item_id is None or count <= 0:
                    logger.warning("Skipping invalid reward item", item=raw)
                    continue
                rewards.append(RewardItem(item_id=item_id, count=count))

            return cls(
                id=str(data["id"]),
                timestamp=int(data["timestamp"]),
                expiration_time=int(data["expirationTime"]),
                source=source,
                rewards=rewards,
                status=status,
                eligibility=data.get("eligibility") or ELIGIBILITY_ALL,
                metadata={str(k): str(v) for k, v in metadata.items()},
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.error("Error deserializing reward entry", error=str(e))
            return None


class PaymentBoardStats(BaseModel):
    unclaimed: int = 0
    claimed: int = 0
    expired: int = 0
    total: int = 0


# Receives items claimed with ClaimDestination.DIRECT
InventorySink = Callable[[str, List[RewardItem]], None]


class TownPaymentBoard:
    """Reward ledger and buffer storage owned by exactly one town."""

    def __init__(self, settings: Optional[Settings] = None, clock: Optional[Clock] = None):
        self.settings = settings or get_settings()
        self.clock = clock or now_millis
        self.rewards: List[RewardEntry] = []
        self.buffer = StockLedger()

    # Rewards

    def add_reward(
        self,
        source: RewardSource,
        items: List[RewardItem],
        eligibility: str = ELIGIBILITY_ALL,
        metadata: Optional[Dict[str, str]] = None,
    ) -> Optional[str]:
        """
        Post a new reward.

        Returns:
            The reward id, or None for an empty item list
        """
        if not items:
            logger.warning("Attempted to add empty reward to payment board")
            return None

        now = self.clock()
        entry = RewardEntry(
            timestamp=now,
            expiration_time=now + days_to_millis(self.settings.reward_expiration_days),
            source=source,
            rewards=list(items),
            eligibility=eligibility or ELIGIBILITY_ALL,
            metadata=dict(metadata or {}),
        )
        self.rewards.append(entry)
        logger.debug("Added reward", reward_id=entry.id, source=source.value, items=len(items))

        if len(self.rewards) > self.settings.max_rewards:
            self.cleanup_expired_rewards()
            if len(self.rewards) > self.settings.max_rewards:
                self.rewards.sort(key=lambda r: r.timestamp)
                while len(self.rewards) > self.settings.max_rewards:
                    removed = self.rewards.pop(0)
                    logger.debug("Removed old reward due to size limit", reward_id=removed.id)

        return entry.id

    def get_reward(self, reward_id: str) -> Optional[RewardEntry]:
        for entry in self.rewards:
            if entry.id == reward_id:
                entry.refresh_status(self.clock())
                return entry
        return None

    def get_unclaimed_rewards(self) -> List[RewardEntry]:
        """Claimable rewards, newest first."""
        now = self.clock()
        return sorted(
            (r for r in self.rewards if r.refresh_status(now) == ClaimStatus.UNCLAIMED),
            key=lambda r: r.timestamp,
            reverse=True,
        )

    def get_all_rewards(self) -> List[RewardEntry]:
        now = self.clock()
        for entry in self.rewards:
            entry.refresh_status(now)
        return sorted(self.rewards, key=lambda r: r.timestamp, reverse=True)

    def get_rewards_by_source(self, source: RewardSource) -> List[RewardEntry]:
        return [r for r in self.get_all_rewards() if r.source == source]

    def claim(
        self,
        reward_id: str,
        actor_id: str,
        destination: ClaimDestination = ClaimDestination.BUFFER,
        eligibility: Optional[str] = None,
        inventory: Optional[InventorySink] = None,
    ) -> Result[List[RewardItem], ClaimError]:
        """
        Claim a reward for ``actor_id``.

        Args:
            reward_id: Reward to claim
            actor_id: Requesting actor
            destination: BUFFER deposits into the communal buffer; DIRECT hands
                the items to ``inventory`` (if given) for the actor
            eligibility: Claimer qualifier; defaults to the actor id
            inventory: External collaborator receiving DIRECT claims

        Returns:
            Result with the granted items or a ClaimError
        """
        entry = self.get_reward(reward_id)
        if entry is None:
            return Result.fail(ClaimError(code=ClaimErrorCode.NOT_FOUND, message="Reward not found"))

        if entry.status == ClaimStatus.EXPIRED:
            return Result.fail(
                ClaimError(code=ClaimErrorCode.EXPIRED, message="Reward cannot be claimed: expired")
            )
        if entry.status != ClaimStatus.UNCLAIMED:
            return Result.fail(
                ClaimError(
                    code=ClaimErrorCode.ALREADY_RESOLVED,
                    message="Reward cannot be claimed: already claimed",
                )
            )
        if not entry.is_eligible(eligibility if eligibility is not None else actor_id):
            return Result.fail(
                ClaimError(
                    code=ClaimErrorCode.NOT_ELIGIBLE,
                    message="Reward cannot be claimed: not eligible",
                )
            )

        granted = [item.model_copy() for item in entry.rewards]

        if destination == ClaimDestination.BUFFER:
            if not self._buffer_has_room(granted):
                return Result.fail(
                    ClaimError(code=ClaimErrorCode.BUFFER_FULL, message="Buffer storage is full")
                )
            for item in granted:
                self.buffer.add(item.item_id, item.count)
            entry.status = ClaimStatus.CLAIMED
        else:
            entry.status = ClaimStatus.CLAIMED
            if inventory is not None:
                inventory(actor_id, granted)

        logger.debug(
            "Claimed reward",
            reward_id=reward_id,
            actor_id=actor_id,
            destination=destination.value,
        )
        return Result.ok(granted)

    def cleanup_expired_rewards(self) -> int:
        """
        Mark expired rewards and drop expired ones past the retention window.

        Returns:
            Number of entries removed
        """
        now = self.clock()
        cutoff = now - days_to_millis(self.settings.expired_reward_retention_days)
        kept = []
        removed = 0
        for entry in self.rewards:
            entry.refresh_status(now)
            if entry.status == ClaimStatus.EXPIRED and entry.timestamp < cutoff:
                removed += 1
                continue
            kept.append(entry)
        self.rewards = kept

        if removed:
            logger.debug("Cleaned up old expired rewards", count=removed)
        return removed

    def get_stats(self) -> PaymentBoardStats:
        self.cleanup_expired_rewards()
        stats = PaymentBoardStats(total=len(self.rewards))
        for entry in self.rewards:
            if entry.status == ClaimStatus.UNCLAIMED:
                stats.unclaimed += 1
            elif entry.status == ClaimStatus.CLAIMED:
                stats.claimed += 1
            else:
                stats.expired += 1
        return stats

    # Buffer storage

    def _slots_used(self, counts: Dict[str, int]) -> int:
        stack = self.settings.buffer_stack_size
        return sum(math.ceil(count / stack) for count in counts.values())

    def _buffer_has_room(self, items: List[RewardItem]) -> bool:
        merged = self.buffer.items()
        for item in items:
            merged[item.item_id] = merged.get(item.item_id, 0) + item.count
        return self._slots_used(merged) <= self.settings.buffer_slot_count

    def add_to_buffer(self, item_id: str, delta: int) -> bool:
        """Add to (or with a negative delta, remove from) the buffer."""
        return self.buffer.add(item_id, delta)

    def remove_from_buffer(self, item_id: str, count: int) -> bool:
        return self.buffer.remove(item_id, count)

    def get_buffer_count(self, item_id: str) -> int:
        return self.buffer.get(item_id)

    def get_buffer_storage(self) -> Dict[str, int]:
        return self.buffer.items()

    # Persistence

    def save(self) -> Dict[str, Any]:
        return {
            "rewards": [entry.to_dict() for entry in self.rewards],
            "bufferStorage": self.buffer.to_dict(),
        }

    def load(self, data: Dict[str, Any]) -> None:
        self.rewards = []
        if not isinstance(data, dict):
            logger.warning("Ignoring invalid payment board data", data_type=type(data).__name__)
            data = {}
        raw_rewards = data.get("rewards", [])
        if not isinstance(raw_rewards, list):
            logger.warning("Ignoring invalid reward list", data_type=type(raw_rewards).__name__)
            raw_rewards = []
        for raw in raw_rewards:
            entry = RewardEntry.from_dict(raw)
            if entry is not None:
                self.rewards.append(entry)
        self.buffer = StockLedger.from_dict(data.get("bufferStorage", {}), context="bufferStorage")

        logger.debug(
            "Loaded payment board",
            rewards=len(self.rewards),
            buffer_items=len(self.buffer),
        )
