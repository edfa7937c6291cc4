"""Append-only JSONL log of cancel intents and offer responses."""
import json
import logging
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)


def load_jsonl(path: str) -> List[Dict]:
    """Load JSONL file."""
    data = []
    with open(path) as f:
        for line in f:
            if line.strip():
                data.append(json.loads(line))
    return data


class OutcomeLogger:
    """
    Write one JSON line per event for offline analysis.

    Event kinds:
        - cancel_intent: tenant, customer, offer selected (or none), copy confidence
        - offer_response: tenant, offer, response, reward

    Write failures are logged and swallowed so they never fail a request.
    """

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path) if path else None
        self._lock = threading.Lock()
        if self.path:
            self.path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def enabled(self) -> bool:
        return self.path is not None

    def log(self, kind: str, **fields) -> Optional[Dict]:
        if not self.enabled:
            return None

        record = {
            "kind": kind,
            "created_at": datetime.now(timezone.utc).isoformat(),
            **fields,
        }

        try:
            with self._lock, open(self.path, "a") as f:
                f.write(json.dumps(record, default=str) + "\n")
        except OSError as e:
            logger.error(f"Failed to write outcome log: {e}")
            return None

        return record

    def log_cancel_intent(self, tenant_id: str, customer_id: str, **fields) -> Optional[Dict]:
        return self.log("cancel_intent", tenant_id=tenant_id, customer_id=customer_id, **fields)

    def log_offer_response(self, tenant_id: str, offer_id: str, response: str, reward: float, **fields) -> Optional[Dict]:
        return self.log(
            "offer_response",
            tenant_id=tenant_id,
            offer_id=offer_id,
            response=response,
            reward=reward,
            **fields,
        )

    def read(self) -> List[Dict]:
        """All records written so far; empty when disabled or not yet created."""
        if not self.enabled:
            return []
        with self._lock:
            if not self.path.exists():
                return []
            return load_jsonl(str(self.path))
