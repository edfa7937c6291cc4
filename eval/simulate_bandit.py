"""Run the offer bandit against the simulated cancel flow."""
import argparse
import json
from pathlib import Path
from typing import Dict, Optional

import numpy as np

from agents.offers import load_offers
from agents.q_bandit import OfferBandit
from env.offer_env import OfferResponseEnv


def run_simulation(
    bandit: OfferBandit,
    env: OfferResponseEnv,
    num_episodes: int = 50,
    decay_rate: Optional[float] = 0.99,
    seed: Optional[int] = None,
) -> Dict:
    """
    Train a bandit online against the simulator.

    Epsilon is decayed once per episode when decay_rate is set.

    Returns:
        Dict with per-episode mean rewards, final bandit metrics, and the
        learned vs. simulated best offer
    """
    episode_rewards = []

    for episode in range(num_episodes):
        env.reset(seed=None if seed is None else seed + episode)
        rewards = []
        done = False

        while not done:
            offer = bandit.select_action()
            action = bandit.arm_ids.index(offer.id)
            _, reward, terminated, truncated, _ = env.step(action)
            bandit.update(offer.id, reward)
            rewards.append(reward)
            done = terminated or truncated

        if decay_rate is not None:
            bandit.decay_epsilon(decay_rate)

        episode_rewards.append(float(np.mean(rewards)))

        if episode % 10 == 0:
            print(f"Episode {episode}/{num_episodes}, Avg Reward: {episode_rewards[-1]:.3f}, Epsilon: {bandit.epsilon:.3f}")

    expected = env.expected_rewards()
    learned_best = max(bandit.arms, key=lambda arm: bandit.q_values[arm.id]).id

    return {
        "episode_rewards": episode_rewards,
        "metrics": bandit.get_metrics(),
        "learned_best": learned_best,
        "simulated_best": env.offers[int(np.argmax(expected))].id,
        "expected_rewards": {offer.id: float(r) for offer, r in zip(env.offers, expected)},
    }


def main():
    parser = argparse.ArgumentParser(description="Simulate offer bandit learning")
    parser.add_argument("--offers", default="config/offers.yaml", help="Offers YAML")
    parser.add_argument("--episodes", type=int, default=50, help="Number of episodes")
    parser.add_argument("--episode-length", type=int, default=100, help="Cancel intents per episode")
    parser.add_argument("--alpha", type=float, default=0.1, help="Learning rate")
    parser.add_argument("--epsilon", type=float, default=0.1, help="Initial exploration rate")
    parser.add_argument("--decay-rate", type=float, default=0.99, help="Epsilon decay per episode")
    parser.add_argument("--seed", type=int, default=42, help="Random seed")
    parser.add_argument("--output", default=None, help="Write results JSON here")
    args = parser.parse_args()

    offers = load_offers(args.offers)
    bandit = OfferBandit(offers, alpha=args.alpha, epsilon=args.epsilon, seed=args.seed)
    env = OfferResponseEnv(offers, episode_length=args.episode_length, seed=args.seed)

    results = run_simulation(bandit, env, args.episodes, args.decay_rate, seed=args.seed)

    print("\nArm performance:")
    for arm in results["metrics"]["arm_performance"]:
        print(
            f"  {arm['id']:<14} q={arm['q_value']:.3f} count={arm['count']:<5} "
            f"expected={results['expected_rewards'][arm['id']]:.3f}"
        )
    print(f"\nLearned best: {results['learned_best']}, simulated best: {results['simulated_best']}")

    if args.output:
        Path(args.output).parent.mkdir(parents=True, exist_ok=True)
        with open(args.output, "w") as f:
            json.dump(results, f, indent=2, default=str)
        print(f"✓ Results saved to {args.output}")


if __name__ == "__main__":
    main()
