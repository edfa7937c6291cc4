"""Offer eligibility: decide whether a cancel intent gets a retention offer."""
from typing import Optional


def estimate_churn_risk(
    tenure_days: int,
    logins_last_30d: int,
    negative_tickets: int = 0,
) -> float:
    """
    Heuristic churn risk from usage, support history and tenure.

    Args:
        tenure_days: Days since signup
        logins_last_30d: Usage events in the last 30 days
        negative_tickets: Negative-sentiment support tickets in the last 90 days

    Returns:
        churn_risk: Score in [0, 1]
    """
    risk = 0.3

    # Usage
    if logins_last_30d < 5:
        risk += 0.2
    if logins_last_30d == 0:
        risk += 0.3

    # Support tickets
    if negative_tickets > 2:
        risk += 0.2
    if negative_tickets > 5:
        risk += 0.2

    # Tenure
    if tenure_days < 7:
        risk += 0.2
    if tenure_days > 365:
        risk -= 0.1

    return max(0.0, min(1.0, risk))


def urgency_for(churn_risk: float) -> str:
    """Map churn risk to copy urgency."""
    if churn_risk > 0.7:
        return "high"
    elif churn_risk > 0.4:
        return "medium"
    return "low"


class OfferEligibilityPolicy:
    """
    Threshold rules for presenting an offer at all.

    No offer when:
        - churn risk is very high (likely to churn anyway)
        - the customer is brand new
        - MRR is too low to be worth the concession
        - an offer was presented recently
    """

    def __init__(
        self,
        max_churn_risk: float = 0.9,
        min_tenure_days: int = 3,
        min_mrr: float = 10.0,
    ):
        self.max_churn_risk = max_churn_risk
        self.min_tenure_days = min_tenure_days
        self.min_mrr = min_mrr

    def reason_to_skip(
        self,
        churn_risk: float,
        tenure_days: int,
        mrr: float,
        recently_offered: bool = False,
    ) -> Optional[str]:
        """Return why no offer should be made, or None if eligible."""
        if churn_risk > self.max_churn_risk:
            return "churn_risk_too_high"
        if tenure_days < self.min_tenure_days:
            return "tenure_too_short"
        if mrr < self.min_mrr:
            return "mrr_too_low"
        if recently_offered:
            return "recently_offered"
        return None

    def should_offer(
        self,
        churn_risk: float,
        tenure_days: int,
        mrr: float,
        recently_offered: bool = False,
    ) -> bool:
        return self.reason_to_skip(churn_risk, tenure_days, mrr, recently_offered) is None
