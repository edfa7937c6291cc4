"""Unit tests for offer eligibility rules."""
import pytest

from agents.eligibility import OfferEligibilityPolicy, estimate_churn_risk, urgency_for


@pytest.mark.unit
def test_churn_risk_bounded():
    """Churn risk should stay in [0, 1]."""
    for tenure in [0, 5, 30, 400]:
        for logins in [0, 3, 50]:
            for tickets in [0, 3, 10]:
                risk = estimate_churn_risk(tenure, logins, tickets)
                assert 0.0 <= risk <= 1.0


@pytest.mark.unit
def test_churn_risk_components():
    """Each signal should move risk in the right direction."""
    base = estimate_churn_risk(tenure_days=100, logins_last_30d=20, negative_tickets=0)
    assert base == pytest.approx(0.3)

    assert estimate_churn_risk(100, 3, 0) == pytest.approx(0.5)
    assert estimate_churn_risk(100, 0, 0) == pytest.approx(0.8)
    assert estimate_churn_risk(100, 20, 3) == pytest.approx(0.5)
    assert estimate_churn_risk(400, 20, 0) == pytest.approx(0.2)
    assert estimate_churn_risk(2, 0, 6) == 1.0


@pytest.mark.unit
def test_urgency_levels():
    assert urgency_for(0.8) == "high"
    assert urgency_for(0.5) == "medium"
    assert urgency_for(0.4) == "low"


@pytest.mark.unit
def test_eligible_customer():
    """Typical customer should get an offer."""
    policy = OfferEligibilityPolicy()

    assert policy.should_offer(churn_risk=0.5, tenure_days=60, mrr=49.0)
    assert policy.reason_to_skip(0.5, 60, 49.0) is None


@pytest.mark.unit
def test_skip_reasons():
    """Each rule should produce its own skip reason."""
    policy = OfferEligibilityPolicy(max_churn_risk=0.9, min_tenure_days=3, min_mrr=10.0)

    assert policy.reason_to_skip(0.95, 60, 49.0) == "churn_risk_too_high"
    assert policy.reason_to_skip(0.5, 1, 49.0) == "tenure_too_short"
    assert policy.reason_to_skip(0.5, 60, 5.0) == "mrr_too_low"
    assert policy.reason_to_skip(0.5, 60, 49.0, recently_offered=True) == "recently_offered"
    assert not policy.should_offer(0.5, 60, 49.0, recently_offered=True)


@pytest.mark.unit
def test_thresholds_inclusive():
    """Values exactly at the thresholds are still eligible."""
    policy = OfferEligibilityPolicy()

    assert policy.should_offer(churn_risk=0.9, tenure_days=3, mrr=10.0)
