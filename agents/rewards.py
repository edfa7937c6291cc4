"""Reward shaping for offer outcomes."""
from enum import Enum
from typing import Union

import numpy as np

DECLINE_PENALTY = -0.1
COST_PENALTY_WEIGHT = 0.1
REWARD_MIN = -1.0
REWARD_MAX = 1.0


class UserResponse(str, Enum):
    ACCEPTED = "accepted"
    DECLINED = "declined"
    IGNORED = "ignored"


def calculate_reward(
    user_response: Union[UserResponse, str],
    mrr_value: float,
    cost: float,
) -> float:
    """
    Translate an offer outcome into a bounded learning signal.

    reward = clip(base - cost * COST_PENALTY_WEIGHT, -1, 1)

    where base is mrr * (1 - cost) when accepted, DECLINE_PENALTY when
    declined and 0 when ignored.

    Args:
        user_response: accepted, declined or ignored
        mrr_value: Recurring revenue at stake (>= 0)
        cost: Offer cost fraction

    Returns:
        Reward in [REWARD_MIN, REWARD_MAX]
    """
    response = UserResponse(user_response)
    if mrr_value < 0:
        raise ValueError(f"mrr_value must be non-negative, got {mrr_value}")

    if response is UserResponse.ACCEPTED:
        base_reward = mrr_value * (1.0 - cost)
    elif response is UserResponse.DECLINED:
        base_reward = DECLINE_PENALTY
    else:
        base_reward = 0.0

    # Penalize generous offers regardless of outcome
    reward = base_reward - cost * COST_PENALTY_WEIGHT

    return float(np.clip(reward, REWARD_MIN, REWARD_MAX))
