"""Simulated cancel-flow environment for offline offer bandit evaluation."""
from typing import Dict, List, Optional, Sequence, Tuple

import gymnasium as gym
import numpy as np
from gymnasium import spaces

from agents.offers import DEFAULT_OFFERS, Offer, OfferType, validate_offers
from agents.rewards import (
    COST_PENALTY_WEIGHT,
    DECLINE_PENALTY,
    REWARD_MAX,
    REWARD_MIN,
    UserResponse,
    calculate_reward,
)


def default_accept_prob(offer: Offer) -> float:
    """Synthetic acceptance probability: bigger concessions convert better."""
    if offer.type == OfferType.DISCOUNT:
        prob = 0.15 + offer.value / 100.0
    elif offer.type == OfferType.PAUSE:
        prob = 0.20 + offer.value / 300.0
    elif offer.type == OfferType.EXTENSION:
        prob = 0.20
    else:
        prob = 0.15
    return float(np.clip(prob, 0.0, 0.95))


class OfferResponseEnv(gym.Env):
    """
    One step = one cancel intent.

    Observation space:
        - mrr: [0, inf) recurring revenue of the cancelling customer
        - churn_risk: [0, 1]

    Action space:
        - offer_idx: Discrete(len(offers))

    Response model:
        accepted with p = accept_prob[offer] scaled by (1 - 0.5 * churn_risk),
        otherwise ignored with p = ignore_prob, otherwise declined.

    Reward:
        calculate_reward(response, mrr, offer.cost)
    """

    metadata = {"render_modes": []}

    def __init__(
        self,
        offers: Optional[Sequence[Offer]] = None,
        accept_probs: Optional[Sequence[float]] = None,
        ignore_prob: float = 0.2,
        avg_mrr: float = 50.0,
        episode_length: int = 100,
        seed: Optional[int] = None,
    ):
        super().__init__()

        self.offers: List[Offer] = validate_offers(offers if offers is not None else DEFAULT_OFFERS)
        if accept_probs is None:
            accept_probs = [default_accept_prob(offer) for offer in self.offers]
        if len(accept_probs) != len(self.offers):
            raise ValueError("accept_probs must have one entry per offer")

        self.accept_probs = np.asarray(accept_probs, dtype=np.float64)
        self.ignore_prob = ignore_prob
        self.avg_mrr = avg_mrr
        self.episode_length = episode_length

        self.observation_space = spaces.Dict(
            {
                "mrr": spaces.Box(0, np.inf, shape=(1,), dtype=np.float32),
                "churn_risk": spaces.Box(0, 1, shape=(1,), dtype=np.float32),
            }
        )
        self.action_space = spaces.Discrete(len(self.offers))

        self.np_random = None
        self.seed(seed)
        self.step_count = 0
        self._obs = None

    def seed(self, seed: Optional[int] = None):
        """Set random seed."""
        self.np_random = np.random.default_rng(seed)
        self.action_space.seed(seed)
        return [seed]

    def _generate_observation(self) -> Dict[str, np.ndarray]:
        mrr = max(0.0, self.np_random.normal(self.avg_mrr, self.avg_mrr * 0.3))
        churn_risk = self.np_random.beta(2, 5)
        return {
            "mrr": np.array([mrr], dtype=np.float32),
            "churn_risk": np.array([churn_risk], dtype=np.float32),
        }

    def reset(
        self, seed: Optional[int] = None, options: Optional[Dict] = None
    ) -> Tuple[Dict, Dict]:
        """Reset environment."""
        super().reset(seed=seed)
        if seed is not None:
            self.seed(seed)

        self.step_count = 0
        self._obs = self._generate_observation()

        return self._obs, {}

    def sample_response(self, offer_idx: int, churn_risk: float) -> UserResponse:
        p_accept = self.accept_probs[offer_idx] * (1.0 - 0.5 * churn_risk)
        u = self.np_random.random()
        if u < p_accept:
            return UserResponse.ACCEPTED
        if u < p_accept + (1.0 - p_accept) * self.ignore_prob:
            return UserResponse.IGNORED
        return UserResponse.DECLINED

    def step(self, action) -> Tuple[Dict, float, bool, bool, Dict]:
        """Present offer `action` to the current customer."""
        if self._obs is None:
            raise RuntimeError("Call reset() before step()")

        offer_idx = int(action)
        offer = self.offers[offer_idx]
        mrr = float(self._obs["mrr"][0])
        churn_risk = float(self._obs["churn_risk"][0])

        response = self.sample_response(offer_idx, churn_risk)
        reward = calculate_reward(response, mrr, offer.cost)

        self.step_count += 1
        terminated = self.step_count >= self.episode_length

        info = {
            "offer_id": offer.id,
            "response": response.value,
            "mrr": mrr,
            "step": self.step_count,
        }

        self._obs = self._generate_observation()

        return self._obs, reward, terminated, False, info

    def expected_rewards(self, num_samples: int = 2000) -> np.ndarray:
        """Monte Carlo estimate of each offer's mean reward (for reporting)."""
        rng = np.random.default_rng(0)
        means = np.zeros(len(self.offers))
        for i, offer in enumerate(self.offers):
            churn = rng.beta(2, 5, size=num_samples)
            mrr = np.maximum(0.0, rng.normal(self.avg_mrr, self.avg_mrr * 0.3, size=num_samples))
            p_accept = self.accept_probs[i] * (1.0 - 0.5 * churn)
            u = rng.random(num_samples)
            accepted = u < p_accept
            ignored = ~accepted & (u < p_accept + (1.0 - p_accept) * self.ignore_prob)
            base = np.where(accepted, mrr * (1.0 - offer.cost), np.where(ignored, 0.0, DECLINE_PENALTY))
            means[i] = np.clip(base - offer.cost * COST_PENALTY_WEIGHT, REWARD_MIN, REWARD_MAX).mean()
        return means

    def render(self):
        """Render environment (not implemented)."""
        pass
