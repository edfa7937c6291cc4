"""Retention offer catalog: arm definitions and YAML loading."""
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Optional, Sequence

import yaml

logger = logging.getLogger(__name__)


class BanditConfigError(ValueError):
    """Raised when the offer set cannot be used to build a bandit."""


class OfferType(str, Enum):
    DISCOUNT = "discount"
    PAUSE = "pause"
    SWAP = "swap"
    EXTENSION = "extension"


@dataclass(frozen=True)
class Offer:
    """
    One retention offer (a bandit arm).

    Attributes:
        id: Unique offer identifier
        type: Offer category
        value: Magnitude (percent discount, days paused, ...)
        cost: Fraction of value given away, in [0, 1]
        description: Human-readable description
    """
    id: str
    type: OfferType
    value: float
    cost: float
    description: str = ""


DEFAULT_OFFERS: List[Offer] = [
    Offer("discount_10", OfferType.DISCOUNT, 10, 0.1, "10% discount for 3 months"),
    Offer("discount_20", OfferType.DISCOUNT, 20, 0.2, "20% discount for 2 months"),
    Offer("pause_30", OfferType.PAUSE, 30, 0.05, "Pause subscription for 30 days"),
    Offer("pause_60", OfferType.PAUSE, 60, 0.1, "Pause subscription for 60 days"),
    Offer("extension_14", OfferType.EXTENSION, 14, 0.02, "14-day free extension"),
    Offer("swap_plan", OfferType.SWAP, 0, 0.15, "Downgrade to lower plan"),
]


def validate_offers(offers: Sequence[Offer]) -> List[Offer]:
    """
    Check an offer list before it is handed to a bandit.

    Args:
        offers: Ordered offers

    Returns:
        The offers as a list, order preserved

    Raises:
        BanditConfigError: empty list, empty or duplicate ids, cost outside [0, 1]
    """
    offers = list(offers)
    if not offers:
        raise BanditConfigError("At least one offer is required")

    seen = set()
    for offer in offers:
        if not isinstance(offer.id, str) or not offer.id:
            raise BanditConfigError(f"Offer id must be a non-empty string: {offer!r}")
        if offer.id in seen:
            raise BanditConfigError(f"Duplicate offer id: {offer.id}")
        if not isinstance(offer.type, OfferType):
            raise BanditConfigError(f"Unknown offer type for {offer.id}: {offer.type!r}")
        if not 0.0 <= offer.cost <= 1.0:
            raise BanditConfigError(f"Offer {offer.id} cost must be in [0, 1], got {offer.cost}")
        seen.add(offer.id)

    return offers


def offer_from_dict(raw: dict) -> Offer:
    """Build an Offer from a config mapping."""
    try:
        offer_type = OfferType(raw["type"])
    except ValueError:
        raise BanditConfigError(f"Unknown offer type: {raw.get('type')!r}")
    except KeyError as e:
        raise BanditConfigError(f"Offer is missing field {e}")

    try:
        return Offer(
            id=str(raw["id"]),
            type=offer_type,
            value=float(raw.get("value", 0)),
            cost=float(raw["cost"]),
            description=str(raw.get("description", "")),
        )
    except KeyError as e:
        raise BanditConfigError(f"Offer is missing field {e}")


def load_offers(path: Optional[str] = "config/offers.yaml") -> List[Offer]:
    """
    Load offers from YAML, falling back to DEFAULT_OFFERS when the file is absent.

    Expected layout:

        offers:
          - id: discount_10
            type: discount
            value: 10
            cost: 0.1
            description: 10% discount for 3 months
    """
    if path is None or not Path(path).exists():
        logger.warning(f"Offers file {path} not found, using default offers")
        return list(DEFAULT_OFFERS)

    with open(path) as f:
        config = yaml.safe_load(f) or {}

    offers = [offer_from_dict(raw) for raw in config.get("offers", [])]
    logger.info(f"Loaded {len(offers)} offers from {path}")

    return validate_offers(offers)
