"""Epsilon-greedy Q-learning bandit for retention offer selection."""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import numpy as np

from agents.offers import BanditConfigError, Offer, validate_offers
from agents.rewards import calculate_reward

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OfferBandit:
    """
    Epsilon-greedy Q-learning over a fixed, ordered set of offers.

    Value update (constant step size, recent outcomes weigh more):
        Q(a) <- Q(a) + alpha * (r - Q(a))

    Selection:
        - with probability epsilon: uniform over all offers
        - otherwise: highest Q, ties go to the first offer in configured order

    One instance holds one tenant's state. Callers that share an instance
    across threads must serialize update() themselves (see TenantBanditManager).
    """

    def __init__(
        self,
        arms: Sequence[Offer],
        alpha: float = 0.1,
        epsilon: float = 0.1,
        min_epsilon: float = 0.01,
        seed: Optional[int] = None,
    ):
        """
        Initialize bandit.

        Args:
            arms: Ordered, non-empty offer list
            alpha: Learning rate
            epsilon: Initial exploration rate
            min_epsilon: Floor applied by decay_epsilon
            seed: Random seed for exploration
        """
        self.arms: List[Offer] = validate_offers(arms)
        self._arms_by_id: Dict[str, Offer] = {arm.id: arm for arm in self.arms}

        for name, value in (("alpha", alpha), ("epsilon", epsilon), ("min_epsilon", min_epsilon)):
            if not 0.0 <= value <= 1.0:
                raise BanditConfigError(f"{name} must be in [0, 1], got {value}")

        self.alpha = alpha
        self.epsilon = epsilon
        self.min_epsilon = min_epsilon
        self.rng = np.random.default_rng(seed)

        self.q_values: Dict[str, float] = {arm.id: 0.0 for arm in self.arms}
        self.action_counts: Dict[str, int] = {arm.id: 0 for arm in self.arms}
        self.total_reward = 0.0
        self.last_updated = utcnow()

    @property
    def arm_ids(self) -> List[str]:
        return [arm.id for arm in self.arms]

    def get_arm(self, arm_id: str) -> Optional[Offer]:
        return self._arms_by_id.get(arm_id)

    def select_action(self) -> Offer:
        """Pick the next offer to present. Does not modify state."""
        if self.rng.random() < self.epsilon:
            arm = self.arms[int(self.rng.integers(len(self.arms)))]
            logger.debug(f"Exploring: selected {arm.id}")
            return arm

        # max() keeps the first of equal keys, which fixes the tie-break order
        return max(self.arms, key=lambda arm: self.q_values[arm.id])

    def calculate_reward(
        self,
        arm_id: str,
        user_response: str,
        mrr_value: float,
        arm_cost_fraction: float,
    ) -> float:
        """
        Reward for an offer outcome, clamped to [-1, 1].

        Pure: arm_id is not validated here, update() does that.
        """
        return calculate_reward(user_response, mrr_value, arm_cost_fraction)

    def update(self, arm_id: str, reward: float) -> bool:
        """
        Update the offer's Q-value with an observed reward.

        Args:
            arm_id: Offer that was presented
            reward: Observed reward, normally from calculate_reward

        Returns:
            False (and no state change) if arm_id is not configured
        """
        if arm_id not in self.q_values:
            logger.warning(f"Unknown action ID: {arm_id}")
            return False

        old_q = self.q_values[arm_id]
        self.q_values[arm_id] = old_q + self.alpha * (reward - old_q)
        self.action_counts[arm_id] += 1
        self.total_reward += reward
        self.last_updated = utcnow()

        return True

    def get_metrics(self) -> Dict[str, Any]:
        """Read-only performance snapshot."""
        total_actions = sum(self.action_counts.values())
        avg_reward = self.total_reward / total_actions if total_actions > 0 else 0.0

        arm_performance = []
        for arm in self.arms:
            q_value = self.q_values.get(arm.id, 0.0)
            count = self.action_counts.get(arm.id, 0)
            arm_performance.append(
                {
                    "id": arm.id,
                    "type": arm.type.value,
                    "q_value": q_value,
                    "count": count,
                    "avg_reward": q_value / count if count > 0 else 0.0,
                }
            )

        return {
            "total_actions": total_actions,
            "avg_reward": avg_reward,
            "exploration_rate": self.epsilon,
            "arm_performance": arm_performance,
            "last_updated": self.last_updated,
        }

    def decay_epsilon(self, decay_rate: float = 0.99):
        """Shrink the exploration rate, never below min_epsilon."""
        self.epsilon = max(self.min_epsilon, self.epsilon * decay_rate)

    def get_state(self) -> Dict[str, Any]:
        """Independent copy of the learned state, for persistence."""
        return {
            "q_values": dict(self.q_values),
            "action_counts": dict(self.action_counts),
            "total_reward": self.total_reward,
            "exploration_rate": self.epsilon,
            "last_updated": self.last_updated,
        }

    def load_state(self, state: Dict[str, Any]):
        """
        Replace learned state with a snapshot from get_state().

        The snapshot is reconciled against the configured offers: entries for
        offers that no longer exist are dropped and new offers start at zero.

        total_reward is not tracked per offer, so it is kept as saved. After
        offers are dropped, avg_reward still includes their past reward.
        """
        q_values = state.get("q_values", {})
        action_counts = state.get("action_counts", {})

        dropped = (set(q_values) | set(action_counts)) - set(self._arms_by_id)
        missing = [arm_id for arm_id in self.arm_ids if arm_id not in q_values]
        if dropped or missing:
            logger.warning(
                f"Snapshot does not match configured offers "
                f"(dropped={sorted(dropped)}, missing={missing})"
            )
        if dropped:
            logger.warning(
                f"total_reward={state.get('total_reward', 0.0)} kept from snapshot "
                f"and still includes reward from dropped offers"
            )

        self.q_values = {arm_id: float(q_values.get(arm_id, 0.0)) for arm_id in self.arm_ids}
        self.action_counts = {arm_id: int(action_counts.get(arm_id, 0)) for arm_id in self.arm_ids}
        self.total_reward = float(state.get("total_reward", 0.0))

        if state.get("exploration_rate") is not None:
            self.epsilon = float(state["exploration_rate"])

        last_updated = state.get("last_updated")
        if isinstance(last_updated, str):
            last_updated = datetime.fromisoformat(last_updated)
        self.last_updated = last_updated or utcnow()
