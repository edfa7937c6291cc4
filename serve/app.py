"""FastAPI serving application for cancel-intent offers."""
import logging
import os
import time
import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Literal, Optional

from fastapi import FastAPI, HTTPException, Query
from pydantic import BaseModel, Field

from agents.eligibility import OfferEligibilityPolicy, estimate_churn_risk, urgency_for
from agents.offers import load_offers
from agents.rewards import UserResponse
from eval.business_metrics import (
    TIME_RANGE_PATTERN,
    TenantMetricsRegistry,
    metrics_from_records,
    parse_time_range,
)
from eval.outcome_log import OutcomeLogger
from serve.copy_composer import CopyComposer
from serve.healthchecks import run_all_health_checks
from serve.offer_cache import OfferCache
from serve.state_store import (
    TENANT_ID_PATTERN,
    InMemoryStateStore,
    JsonFileStateStore,
    TenantBanditManager,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Global state
bandit_manager: Optional[TenantBanditManager] = None
offer_cache: Optional[OfferCache] = None
eligibility: Optional[OfferEligibilityPolicy] = None
copy_composer: Optional[CopyComposer] = None
tenant_metrics: Optional[TenantMetricsRegistry] = None
outcome_logger: Optional[OutcomeLogger] = None
epsilon_decay_every: int = 100
epsilon_decay_rate: float = 0.99


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, default))


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, default))


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize serving components on startup."""
    global bandit_manager, offer_cache, eligibility, copy_composer
    global tenant_metrics, outcome_logger, epsilon_decay_every, epsilon_decay_rate

    logger.info("Starting up Offer Retention API...")

    offers = load_offers(os.getenv("OFFERS_PATH", "config/offers.yaml"))

    state_dir = os.getenv("BANDIT_STATE_DIR")
    if state_dir:
        store = JsonFileStateStore(state_dir)
        logger.info(f"Persisting bandit state to {state_dir}")
    else:
        store = InMemoryStateStore()
        logger.warning("BANDIT_STATE_DIR not set - bandit state is kept in memory only")

    bandit_manager = TenantBanditManager(
        offers,
        store=store,
        alpha=_env_float("BANDIT_ALPHA", 0.1),
        epsilon=_env_float("BANDIT_EPSILON", 0.1),
    )
    epsilon_decay_every = _env_int("EPSILON_DECAY_EVERY", 100)
    epsilon_decay_rate = _env_float("EPSILON_DECAY_RATE", 0.99)

    offer_cache = OfferCache(
        offer_ttl_seconds=_env_float("OFFER_TTL_SECONDS", 3600),
        rate_limit=_env_int("RATE_LIMIT_PER_HOUR", 10),
    )
    eligibility = OfferEligibilityPolicy()
    copy_composer = CopyComposer()
    tenant_metrics = TenantMetricsRegistry()
    outcome_logger = OutcomeLogger(os.getenv("OUTCOME_LOG_PATH"))

    logger.info(f"Startup complete ({len(offers)} offers)")

    yield

    bandit_manager = None
    offer_cache = None


app = FastAPI(
    title="Offer Retention API",
    description="Cancel-intent offers selected by a Q-learning bandit",
    version="0.1.0",
    lifespan=lifespan,
)


class CancelIntentRequest(BaseModel):
    """Request schema for POST /cancel-intent."""
    tenant_id: str = Field(..., pattern=TENANT_ID_PATTERN.pattern)
    user_id: str = Field(..., min_length=1)
    customer_id: str = Field(..., min_length=1)
    subscription_id: str = Field(..., min_length=1)
    plan: str = ""
    mrr: float = Field(..., ge=0)
    cancel_reason: Optional[str] = None
    tenure_days: Optional[int] = Field(None, ge=0, description="Unknown customers get no offer")
    logins_last_30d: int = Field(0, ge=0)
    negative_tickets: int = Field(0, ge=0)
    support_sentiment: Optional[Literal["positive", "neutral", "negative"]] = None
    churn_risk: Optional[float] = Field(None, ge=0, le=1, description="Overrides the heuristic estimate")
    metadata: Dict[str, Any] = Field(default_factory=dict)


class CopyOutput(BaseModel):
    headline: str
    body: str
    cta: str


class OfferOutput(BaseModel):
    id: str
    arm_id: str
    type: str
    value: float
    description: str
    copy_text: CopyOutput = Field(..., alias="copy")
    expires_at: datetime

    model_config = {"populate_by_name": True}


class CancelIntentResponse(BaseModel):
    """Response schema for POST /cancel-intent."""
    status: Literal["offer", "cancel"]
    offer: Optional[OfferOutput] = None
    reason: Optional[str] = None
    confidence: float = Field(..., ge=0, le=1)
    processing_time_ms: float
    bandit_metrics: Optional[Dict[str, Any]] = None


class OfferResponseRequest(BaseModel):
    """Request schema for PUT /cancel-intent."""
    offer_id: str = Field(..., min_length=1)
    response: UserResponse
    user_id: str = Field(..., min_length=1)


class OfferResponseResult(BaseModel):
    success: bool
    reward: float
    updated: bool


def _require_ready():
    if bandit_manager is None or offer_cache is None:
        raise HTTPException(status_code=503, detail="Service not initialized")


@app.get("/healthz")
async def health_check():
    """Basic health check."""
    return {"status": "healthy", "service": "offer-retention-api"}


@app.get("/readyz")
async def readiness_check():
    """Readiness check with offer and state store validation."""
    _require_ready()

    health_results = run_all_health_checks(bandit_manager)

    if not health_results["overall"]["healthy"]:
        raise HTTPException(status_code=503, detail=health_results)

    return {
        "status": "ready",
        "checks": health_results,
        "pending_offers": offer_cache.pending_count(),
    }


@app.post("/cancel-intent", response_model=CancelIntentResponse, response_model_by_alias=True)
def cancel_intent(request: CancelIntentRequest):
    """
    Handle a cancel intent: pick an offer or let the customer cancel.

    Args:
        request: Customer, subscription and usage context

    Returns:
        Offer with copy, or status "cancel" with the reason
    """
    _require_ready()
    start_time = time.perf_counter()

    if offer_cache.hit_rate_limit(request.customer_id):
        raise HTTPException(status_code=429, detail="Rate limit exceeded")

    try:
        tenure_days = request.tenure_days if request.tenure_days is not None else 0
        if request.churn_risk is not None:
            churn_risk = request.churn_risk
        elif request.tenure_days is None:
            churn_risk = 0.5
        else:
            churn_risk = estimate_churn_risk(
                tenure_days, request.logins_last_30d, request.negative_tickets
            )

        skip_reason = eligibility.reason_to_skip(
            churn_risk,
            tenure_days,
            request.mrr,
            recently_offered=offer_cache.recently_offered(request.customer_id),
        )

        if skip_reason:
            processing_ms = (time.perf_counter() - start_time) * 1000
            tenant_metrics.record_intent(request.tenant_id, offered=False, processing_ms=processing_ms)
            outcome_logger.log_cancel_intent(
                request.tenant_id,
                request.customer_id,
                subscription_id=request.subscription_id,
                offer_id=None,
                skip_reason=skip_reason,
                churn_risk=churn_risk,
                processing_time_ms=processing_ms,
            )
            return CancelIntentResponse(
                status="cancel",
                reason=skip_reason,
                confidence=0.9,
                processing_time_ms=processing_ms,
            )

        bandit = bandit_manager.peek(request.tenant_id)
        selected = bandit.select_action()

        customer_context = {
            "tenure_days": tenure_days,
            "logins_last_30d": request.logins_last_30d,
            "support_sentiment": request.support_sentiment,
            "churn_risk": churn_risk,
        }
        copy = copy_composer.generate_copy(customer_context, selected, urgency_for(churn_risk))

        offer_id = f"offer_{uuid.uuid4().hex}"
        offer_cache.put_offer(
            offer_id,
            {
                "tenant_id": request.tenant_id,
                "user_id": request.user_id,
                "customer_id": request.customer_id,
                "arm_id": selected.id,
                "cost": selected.cost,
                "mrr": request.mrr,
            },
        )
        offer_cache.mark_offered(request.customer_id)
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=offer_cache.offer_ttl_seconds)

        processing_ms = (time.perf_counter() - start_time) * 1000
        tenant_metrics.record_intent(
            request.tenant_id,
            offered=True,
            processing_ms=processing_ms,
            activity={
                "created_at": datetime.now(timezone.utc).isoformat(),
                "customer_id": request.customer_id,
                "offer_id": offer_id,
                "arm_id": selected.id,
                "offer_type": selected.type.value,
            },
        )
        outcome_logger.log_cancel_intent(
            request.tenant_id,
            request.customer_id,
            subscription_id=request.subscription_id,
            plan=request.plan,
            mrr=request.mrr,
            cancel_reason=request.cancel_reason,
            offer_id=offer_id,
            arm_id=selected.id,
            offer_type=selected.type.value,
            copy_confidence=copy["confidence"],
            fallback_used=copy["fallback_used"],
            metadata=request.metadata,
            processing_time_ms=processing_ms,
        )

        return CancelIntentResponse(
            status="offer",
            offer=OfferOutput(
                id=offer_id,
                arm_id=selected.id,
                type=selected.type.value,
                value=selected.value,
                description=selected.description,
                copy=CopyOutput(headline=copy["headline"], body=copy["body"], cta=copy["cta"]),
                expires_at=expires_at,
            ),
            confidence=copy["confidence"],
            processing_time_ms=processing_ms,
            bandit_metrics=bandit.get_metrics(),
        )

    except Exception as e:
        logger.error(f"Error processing cancel intent: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@app.put("/cancel-intent", response_model=OfferResponseResult)
def offer_response(request: OfferResponseRequest):
    """
    Record the customer's answer to an offer and update the tenant's bandit.

    Each offer id is consumed once; repeated feedback returns 404.
    """
    _require_ready()

    record = offer_cache.get_offer(request.offer_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Offer not found or expired")
    if record["user_id"] != request.user_id:
        raise HTTPException(status_code=403, detail="Offer belongs to another user")

    record = offer_cache.take_offer(request.offer_id)
    if record is None:
        raise HTTPException(status_code=404, detail="Offer not found or expired")

    try:
        tenant_id = record["tenant_id"]

        try:
            with bandit_manager.session(tenant_id) as bandit:
                arm = bandit.get_arm(record["arm_id"])
                cost = arm.cost if arm is not None else record["cost"]

                reward = bandit.calculate_reward(record["arm_id"], request.response, record["mrr"], cost)
                updated = bandit.update(record["arm_id"], reward)

                if not updated:
                    logger.warning(f"Feedback for unconfigured offer {record['arm_id']} ignored (tenant={tenant_id})")
                elif epsilon_decay_every > 0:
                    total_actions = sum(bandit.action_counts.values())
                    if total_actions % epsilon_decay_every == 0:
                        bandit.decay_epsilon(epsilon_decay_rate)
                        logger.info(f"Decayed epsilon for tenant {tenant_id} to {bandit.epsilon:.4f}")
        except Exception:
            # nothing was saved, so the answer can be sent again
            offer_cache.put_offer(request.offer_id, record)
            raise

        tenant_metrics.record_response(tenant_id, request.response.value, record["mrr"], request.offer_id)
        outcome_logger.log_offer_response(
            tenant_id,
            request.offer_id,
            request.response.value,
            reward,
            user_id=request.user_id,
            arm_id=record["arm_id"],
            mrr=record["mrr"],
        )

        return OfferResponseResult(success=True, reward=reward, updated=updated)

    except Exception as e:
        logger.error(f"Error processing offer response: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")


@app.get("/metrics/{tenant_id}")
def tenant_metrics_view(
    tenant_id: str,
    time_range: str = Query("30d", pattern=TIME_RANGE_PATTERN.pattern),
):
    """
    Outcome metrics and bandit performance for one tenant.

    With an outcome log configured, counters and recent activity cover the
    last `time_range` and survive restarts. Without one they are lifetime
    in-process counters and `time_range` is ignored.
    """
    _require_ready()

    if not TENANT_ID_PATTERN.match(tenant_id):
        raise HTTPException(status_code=400, detail="Invalid tenant id")

    now = datetime.now(timezone.utc)
    if outcome_logger.enabled:
        since = now - parse_time_range(time_range)
        outcome_metrics = metrics_from_records(outcome_logger.read(), tenant_id, since)
        source = "outcome_log"
    else:
        outcome_metrics = tenant_metrics.get_metrics(tenant_id)
        source = "memory"

    bandit = bandit_manager.peek(tenant_id)

    return {
        "tenant_id": tenant_id,
        **outcome_metrics,
        "bandit": bandit.get_metrics(),
        "time_range": time_range,
        "source": source,
        "last_updated": now,
    }


@app.get("/")
async def root():
    """Root endpoint."""
    endpoints: List[str] = ["/healthz", "/readyz", "/cancel-intent", "/metrics/{tenant_id}"]
    return {
        "service": "Offer Retention API",
        "version": "0.1.0",
        "endpoints": endpoints,
    }
