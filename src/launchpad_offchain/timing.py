"""
Tiers and Validity Windows

Phase of a launch at a given time, the tier a contribution falls into and
the validity interval (in slots) of each protocol action. All times are
POSIX milliseconds.
"""

from dataclasses import dataclass
from typing import Optional

from .chain_context import SlotConfig
from .config import LaunchConfig
from .enums import ActionKind, LaunchPhase, LaunchTimeStatus, Tier
from .errors import OutOfTierBoundsError, WindowInfeasibleError

# Validators compare against strict bounds, keep one slot away from them
BOUNDARY_MARGIN_MS = 1000


def launch_phase(config: LaunchConfig, now: int) -> LaunchPhase:
    if now >= config.end_time:
        return LaunchPhase.ENDED
    if now > config.default_start_time:
        return LaunchPhase.PUBLIC_ACTIVE
    if now > config.presale_tier_start_time:
        return LaunchPhase.PRESALE_ACTIVE
    return LaunchPhase.UPCOMING


def active_tier(config: LaunchConfig, now: int, holds_presale_token: bool = False) -> Optional[Tier]:
    """
    Tier a contribution made at `now` falls into

    Returns:
        DEFAULT once the default tier started, PRESALE during the presale for
        holders of a presale token, None when contributing is not possible
    """
    if now >= config.end_time:
        return None
    if now > config.default_start_time:
        return Tier.DEFAULT
    if now > config.presale_tier_start_time and holds_presale_token:
        return Tier.PRESALE
    return None


def check_tier_bounds(config: LaunchConfig, tier: Tier, amount: int) -> None:
    """
    Raises:
        OutOfTierBoundsError: If `amount` lies outside [min, max] of the tier
    """
    bounds = config.tier_bounds(tier)
    if not bounds.contains(amount):
        raise OutOfTierBoundsError(
            f"Commitment {amount} outside the {tier.value} tier bounds "
            f"[{bounds.min_commitment}, {bounds.max_commitment}]"
        )


def launch_time_status(config: LaunchConfig, now: int) -> LaunchTimeStatus:
    if now < config.start_time:
        return LaunchTimeStatus.UPCOMING
    if now > config.end_time:
        return LaunchTimeStatus.PAST
    return LaunchTimeStatus.ACTIVE


@dataclass(frozen=True)
class ValidityInterval:
    """Transaction validity interval in slots, lower inclusive, upper exclusive"""

    lower_slot: int
    upper_slot: int

    def __post_init__(self):
        if self.lower_slot >= self.upper_slot:
            raise ValueError(f"Empty validity interval [{self.lower_slot}, {self.upper_slot})")


class ValidityWindowCalculator:
    """
    Computes validity intervals of the protocol actions

    The lower bound is backdated from `now` so the transaction stays valid
    while it propagates, and clamped to the earliest time the action is
    legal. The upper bound is `lower + ttl`, capped one second before the
    phase boundary that ends the action.
    """

    def __init__(self, slot_config: SlotConfig, backdate_ms: int, ttl_ms: int):
        self.slot_config = slot_config
        self.backdate_ms = backdate_ms
        self.ttl_ms = ttl_ms

    def _interval(self, lower: int, upper: int, action: ActionKind) -> ValidityInterval:
        lower_slot = self.slot_config.unix_time_to_enclosing_slot(lower)
        upper_slot = self.slot_config.unix_time_to_enclosing_slot(upper)
        if lower_slot >= upper_slot:
            raise WindowInfeasibleError(f"No {action.value} window left between {lower} and {upper}")
        return ValidityInterval(lower_slot, upper_slot)

    def _check_deadline(self, now: int, deadline: int, action: ActionKind) -> None:
        if now + self.backdate_ms > deadline:
            raise WindowInfeasibleError(
                f"{action.value} must be valid before {deadline}, too late at {now}"
            )

    def for_create(self, config: LaunchConfig, tier: Tier, now: int) -> ValidityInterval:
        tier_start = config.tier_bounds(tier).start_time
        # Built ahead of the tier opening: act as if it just opened
        if now <= tier_start:
            now = tier_start + BOUNDARY_MARGIN_MS
        deadline = config.end_time - BOUNDARY_MARGIN_MS
        self._check_deadline(now, deadline, ActionKind.CREATE_COMMITMENT)

        lower = max(now - self.backdate_ms, tier_start + BOUNDARY_MARGIN_MS)
        upper = min(lower + self.ttl_ms, deadline)
        return self._interval(lower, upper, ActionKind.CREATE_COMMITMENT)

    def for_remove(self, config: LaunchConfig, created_time: int, now: int) -> ValidityInterval:
        deadline = config.end_time - BOUNDARY_MARGIN_MS
        self._check_deadline(now, deadline, ActionKind.REMOVE_COMMITMENT)

        lower = max(now - self.backdate_ms, created_time + config.nodes_inactivity_period + BOUNDARY_MARGIN_MS)
        upper = min(lower + self.ttl_ms, deadline)
        return self._interval(lower, upper, ActionKind.REMOVE_COMMITMENT)

    def for_cancel(self, config: LaunchConfig, now: int) -> ValidityInterval:
        deadline = config.start_time - BOUNDARY_MARGIN_MS
        self._check_deadline(now, deadline, ActionKind.CANCEL_LAUNCH)

        lower = now - self.backdate_ms
        upper = min(lower + self.ttl_ms, deadline)
        return self._interval(lower, upper, ActionKind.CANCEL_LAUNCH)

    def for_reclaim(self, config: LaunchConfig, now: int) -> ValidityInterval:
        if now <= config.end_time:
            raise WindowInfeasibleError(f"Commitments can be reclaimed after {config.end_time}, now is {now}")

        lower = max(now - self.backdate_ms, config.end_time + BOUNDARY_MARGIN_MS)
        upper = lower + self.ttl_ms
        return self._interval(lower, upper, ActionKind.RECLAIM_COMMITMENTS)

    def for_action(
        self,
        action: ActionKind,
        config: LaunchConfig,
        now: int,
        tier: Optional[Tier] = None,
        created_time: Optional[int] = None,
    ) -> ValidityInterval:
        """Validity interval of any action kind"""
        if action is ActionKind.CREATE_COMMITMENT:
            if tier is None:
                raise ValueError("Creating a commitment needs the active tier")
            return self.for_create(config, tier, now)
        if action is ActionKind.REMOVE_COMMITMENT:
            if created_time is None:
                raise ValueError("Removing a commitment needs the node creation time")
            return self.for_remove(config, created_time, now)
        if action is ActionKind.CANCEL_LAUNCH:
            return self.for_cancel(config, now)
        return self.for_reclaim(config, now)
