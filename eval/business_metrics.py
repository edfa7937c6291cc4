"""Business metrics for the cancel-intent flow."""
import re
import threading
from collections import deque
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Optional

RECENT_ACTIVITY_LIMIT = 10
TIME_RANGE_PATTERN = re.compile(r"^([1-9][0-9]{0,3})d$")


def compute_save_rate(
    offers_accepted: int,
    offers_sent: int,
) -> float:
    """
    Compute save rate.

    Save rate = accepted / sent * 100
    """
    if offers_sent == 0:
        return 0.0
    return (offers_accepted / offers_sent) * 100


def compute_offer_rate(
    offers_sent: int,
    cancel_intents: int,
) -> float:
    """Share of cancel intents that received an offer."""
    if cancel_intents == 0:
        return 0.0
    return (offers_sent / cancel_intents) * 100


def compute_response_rate(
    responses: int,
    offers_sent: int,
) -> float:
    """Share of offers with an accepted or declined answer."""
    if offers_sent == 0:
        return 0.0
    return (responses / offers_sent) * 100


def parse_time_range(time_range: str) -> timedelta:
    """'30d' -> timedelta(days=30). Raises ValueError for anything else."""
    match = TIME_RANGE_PATTERN.match(time_range)
    if not match:
        raise ValueError(f"Invalid time range: {time_range!r} (expected e.g. '7d', '30d')")
    return timedelta(days=int(match.group(1)))


class RetentionMetricsTracker:
    """Track cancel intents and offer outcomes for one tenant."""

    def __init__(self):
        self.reset()

    def reset(self):
        """Reset metrics."""
        self.cancel_intents = 0
        self.offers_sent = 0
        self.offers_accepted = 0
        self.offers_declined = 0
        self.offers_ignored = 0
        self.mrr_saved = 0.0
        self.total_processing_ms = 0.0
        self.recent_activity = deque(maxlen=RECENT_ACTIVITY_LIMIT)

    def record_intent(self, offered: bool, processing_ms: float, activity: Optional[Dict[str, Any]] = None):
        """
        Record one cancel intent and whether an offer was made.

        Args:
            offered: An offer was presented
            processing_ms: Handling time of the request
            activity: Summary of an offered intent, kept in recent_activity
        """
        self.cancel_intents += 1
        self.offers_sent += int(offered)
        self.total_processing_ms += processing_ms
        if offered and activity is not None:
            self.recent_activity.append(dict(activity, response=None))

    def record_response(self, response: str, mrr: float, offer_id: Optional[str] = None):
        """Record the customer's answer to an offer."""
        if response == "accepted":
            self.offers_accepted += 1
            self.mrr_saved += mrr
        elif response == "declined":
            self.offers_declined += 1
        else:
            self.offers_ignored += 1

        for entry in self.recent_activity:
            if offer_id is not None and entry.get("offer_id") == offer_id:
                entry["response"] = response

    def get_metrics(self) -> Dict[str, Any]:
        """Compute and return all metrics."""
        metrics = {
            "total_cancellations": self.cancel_intents,
            "total_offers_sent": self.offers_sent,
            "total_offers_accepted": self.offers_accepted,
            "total_offers_declined": self.offers_declined,
            "total_offers_ignored": self.offers_ignored,
            "offer_rate": compute_offer_rate(self.offers_sent, self.cancel_intents),
            "save_rate": compute_save_rate(self.offers_accepted, self.offers_sent),
            "response_rate": compute_response_rate(
                self.offers_accepted + self.offers_declined, self.offers_sent
            ),
            "mrr_saved": round(self.mrr_saved, 2),
            "avg_processing_time_ms": (
                self.total_processing_ms / self.cancel_intents if self.cancel_intents > 0 else 0.0
            ),
            # newest first
            "recent_activity": [dict(entry) for entry in reversed(self.recent_activity)],
        }
        return metrics


def metrics_from_records(
    records: Iterable[Dict[str, Any]],
    tenant_id: str,
    since: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Replay outcome-log records into tenant metrics.

    Records are read in file order. Only those for tenant_id created at or
    after `since` count.
    """
    tracker = RetentionMetricsTracker()

    for record in records:
        if record.get("tenant_id") != tenant_id:
            continue
        if since is not None and datetime.fromisoformat(record["created_at"]) < since:
            continue

        if record.get("kind") == "cancel_intent":
            offered = record.get("offer_id") is not None
            tracker.record_intent(
                offered,
                record.get("processing_time_ms") or 0.0,
                activity={
                    "created_at": record["created_at"],
                    "customer_id": record.get("customer_id"),
                    "offer_id": record.get("offer_id"),
                    "arm_id": record.get("arm_id"),
                    "offer_type": record.get("offer_type"),
                },
            )
        elif record.get("kind") == "offer_response":
            tracker.record_response(record["response"], record.get("mrr") or 0.0, record.get("offer_id"))

    return tracker.get_metrics()


class TenantMetricsRegistry:
    """One RetentionMetricsTracker per tenant, created on first write."""

    def __init__(self):
        self._trackers: Dict[str, RetentionMetricsTracker] = {}
        self._lock = threading.Lock()

    def tracker(self, tenant_id: str) -> RetentionMetricsTracker:
        with self._lock:
            if tenant_id not in self._trackers:
                self._trackers[tenant_id] = RetentionMetricsTracker()
            return self._trackers[tenant_id]

    def record_intent(self, tenant_id: str, offered: bool, processing_ms: float, activity: Optional[Dict[str, Any]] = None):
        tracker = self.tracker(tenant_id)
        with self._lock:
            tracker.record_intent(offered, processing_ms, activity)

    def record_response(self, tenant_id: str, response: str, mrr: float, offer_id: Optional[str] = None):
        tracker = self.tracker(tenant_id)
        with self._lock:
            tracker.record_response(response, mrr, offer_id)

    def get_metrics(self, tenant_id: str) -> Dict[str, Any]:
        """Lifetime metrics; unknown tenants read as zero without being stored."""
        with self._lock:
            tracker = self._trackers.get(tenant_id)
            if tracker is None:
                return RetentionMetricsTracker().get_metrics()
            return tracker.get_metrics()

    def __len__(self):
        with self._lock:
            return len(self._trackers)
