"""Template-based retention copy for selected offers."""
import logging
from typing import Dict, List, Optional

from agents.offers import Offer, OfferType

logger = logging.getLogger(__name__)

TEMPLATES: Dict[OfferType, str] = {
    OfferType.DISCOUNT: "We hate to see you go! How about {value:.0f}% off? {description}.",
    OfferType.PAUSE: "Need a break? We can pause your subscription for {value:.0f} days.",
    OfferType.SWAP: "Maybe a different plan would work better? Let's find the right fit.",
    OfferType.EXTENSION: "We'd love to give you {value:.0f} more days to explore all features.",
}

HEADLINES: Dict[str, str] = {
    "high": "Before you go, one last thing",
    "medium": "We'd hate to see you go!",
    "low": "We'd hate to see you go!",
}

TEMPLATE_CONFIDENCE = 0.6


class CopyComposer:
    """
    Compose offer copy for the cancel flow.

    Copy is personalized from the customer context:
        - tenure > 365 days: long_tenure
        - negative support sentiment: negative_sentiment
        - fewer than 5 logins in 30 days: low_usage
    """

    def __init__(self, cta: str = "Keep My Account"):
        self.cta = cta

    def generate_copy(
        self,
        customer_context: Dict,
        offer: Offer,
        urgency: str = "medium",
    ) -> Dict:
        """
        Generate copy for an offer.

        Args:
            customer_context: Dict with tenure_days, logins_last_30d, support_sentiment
            offer: Selected offer
            urgency: low, medium or high

        Returns:
            Dict with headline, body, cta, confidence, fallback_used,
            sentiment and personalization_factors
        """
        factors = self._personalization_factors(customer_context)

        body = TEMPLATES[offer.type].format(value=offer.value, description=offer.description)
        if "long_tenure" in factors:
            body = f"You've been with us for over a year. {body}"

        sentiment = "empathetic" if "negative_sentiment" in factors or urgency == "high" else "encouraging"

        return {
            "headline": HEADLINES.get(urgency, HEADLINES["medium"]),
            "body": body,
            "cta": self.cta,
            "confidence": TEMPLATE_CONFIDENCE,
            "fallback_used": True,
            "sentiment": sentiment,
            "personalization_factors": factors,
        }

    def generate_variants(
        self,
        customer_context: Dict,
        offer: Offer,
        count: int = 3,
    ) -> List[Dict]:
        """Copy variants across urgency levels for A/B tests."""
        urgencies = ["low", "medium", "high"]
        return [
            self.generate_copy(customer_context, offer, urgencies[min(i, len(urgencies) - 1)])
            for i in range(count)
        ]

    def _personalization_factors(self, customer_context: Dict) -> List[str]:
        factors = []

        if customer_context.get("tenure_days", 0) > 365:
            factors.append("long_tenure")

        if customer_context.get("support_sentiment") == "negative":
            factors.append("negative_sentiment")

        logins: Optional[int] = customer_context.get("logins_last_30d")
        if logins is not None and logins < 5:
            factors.append("low_usage")

        return factors
