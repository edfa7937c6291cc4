"""Per-tenant persistence of bandit state."""
import json
import logging
import os
import re
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Sequence

import numpy as np

from agents.offers import Offer
from agents.q_bandit import OfferBandit

logger = logging.getLogger(__name__)

TENANT_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.-]{1,128}$")


def serialize_state(state: Dict[str, Any]) -> Dict[str, Any]:
    """Snapshot -> JSON-safe dict."""
    data = dict(state)
    if isinstance(data.get("last_updated"), datetime):
        data["last_updated"] = data["last_updated"].isoformat()
    return data


def deserialize_state(data: Dict[str, Any]) -> Dict[str, Any]:
    """JSON dict -> snapshot accepted by OfferBandit.load_state."""
    state = dict(data)
    if isinstance(state.get("last_updated"), str):
        state["last_updated"] = datetime.fromisoformat(state["last_updated"])
    return state


class InMemoryStateStore:
    """Process-local snapshots. Lost on restart."""

    def __init__(self):
        self._states: Dict[str, Dict[str, Any]] = {}

    def load(self, tenant_id: str) -> Optional[Dict[str, Any]]:
        data = self._states.get(tenant_id)
        return deserialize_state(data) if data is not None else None

    def save(self, tenant_id: str, state: Dict[str, Any]):
        self._states[tenant_id] = serialize_state(state)

    def tenants(self) -> list:
        return sorted(self._states)

    def healthy(self) -> bool:
        return True


class JsonFileStateStore:
    """
    One JSON document per tenant under a directory.

    Writes go to a temp file and are moved into place, so a reader never
    sees a half-written snapshot.
    """

    def __init__(self, state_dir: str = "checkpoints/bandit_state"):
        self.state_dir = Path(state_dir)
        self.state_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, tenant_id: str) -> Path:
        if not TENANT_ID_PATTERN.match(tenant_id):
            raise ValueError(f"Invalid tenant id: {tenant_id!r}")
        return self.state_dir / f"{tenant_id}.json"

    def load(self, tenant_id: str) -> Optional[Dict[str, Any]]:
        path = self._path(tenant_id)
        if not path.exists():
            return None

        with open(path) as f:
            return deserialize_state(json.load(f))

    def save(self, tenant_id: str, state: Dict[str, Any]):
        path = self._path(tenant_id)
        tmp_path = path.with_suffix(".json.tmp")

        with open(tmp_path, "w") as f:
            json.dump(serialize_state(state), f, indent=2)
        os.replace(tmp_path, path)

    def tenants(self) -> list:
        return sorted(p.stem for p in self.state_dir.glob("*.json"))

    def healthy(self) -> bool:
        return self.state_dir.is_dir() and os.access(self.state_dir, os.W_OK)


class TenantBanditManager:
    """
    Builds one bandit per tenant from the store and writes it back.

    session() holds a per-tenant lock for the whole load -> mutate -> save
    cycle, so concurrent feedback for the same tenant cannot lose updates.
    Different tenants never share state or locks.
    """

    def __init__(
        self,
        arms: Sequence[Offer],
        store=None,
        alpha: float = 0.1,
        epsilon: float = 0.1,
        min_epsilon: float = 0.01,
        seed: Optional[int] = None,
    ):
        self.arms = list(arms)
        self.store = store if store is not None else InMemoryStateStore()
        self.alpha = alpha
        self.epsilon = epsilon
        self.min_epsilon = min_epsilon

        self._rng = np.random.default_rng(seed)
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

        # Fail at startup, not on the first request
        self._new_bandit()

    def _lock_for(self, tenant_id: str) -> threading.Lock:
        with self._locks_guard:
            if tenant_id not in self._locks:
                self._locks[tenant_id] = threading.Lock()
            return self._locks[tenant_id]

    def _new_bandit(self) -> OfferBandit:
        return OfferBandit(
            self.arms,
            alpha=self.alpha,
            epsilon=self.epsilon,
            min_epsilon=self.min_epsilon,
            seed=int(self._rng.integers(2**32)),
        )

    def _load(self, tenant_id: str) -> OfferBandit:
        bandit = self._new_bandit()
        state = self.store.load(tenant_id)
        if state is not None:
            bandit.load_state(state)
        return bandit

    @contextmanager
    def session(self, tenant_id: str) -> Iterator[OfferBandit]:
        """
        Yield the tenant's bandit and persist it on clean exit.

        If the block raises, nothing is saved.
        """
        with self._lock_for(tenant_id):
            bandit = self._load(tenant_id)
            yield bandit
            self.store.save(tenant_id, bandit.get_state())

    def peek(self, tenant_id: str) -> OfferBandit:
        """
        Tenant's bandit for read-only use; changes are not saved.

        Takes no lock. Stores replace snapshots whole, so a read sees either
        the old state or the new one.
        """
        return self._load(tenant_id)
