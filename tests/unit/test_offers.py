"""Unit tests for offer configuration."""
from pathlib import Path

import pytest
import yaml

from agents.offers import (
    DEFAULT_OFFERS,
    BanditConfigError,
    OfferType,
    load_offers,
    offer_from_dict,
)


@pytest.mark.unit
def test_missing_file_uses_defaults(tmp_path):
    """Missing offers file should fall back to defaults."""
    offers = load_offers(str(tmp_path / "nope.yaml"))

    assert offers == DEFAULT_OFFERS


@pytest.mark.unit
def test_load_offers_from_yaml(tmp_path):
    """Offers should load in file order."""
    path = tmp_path / "offers.yaml"
    path.write_text(
        yaml.safe_dump(
            {
                "offers": [
                    {"id": "pause_14", "type": "pause", "value": 14, "cost": 0.03, "description": "Pause"},
                    {"id": "discount_5", "type": "discount", "value": 5, "cost": 0.05},
                ]
            }
        )
    )

    offers = load_offers(str(path))

    assert [o.id for o in offers] == ["pause_14", "discount_5"]
    assert offers[0].type == OfferType.PAUSE
    assert offers[1].description == ""


@pytest.mark.unit
def test_repo_offers_file_loads():
    """Shipped config should match the built-in defaults."""
    offers = load_offers(str(Path(__file__).parents[2] / "config" / "offers.yaml"))

    assert [o.id for o in offers] == [o.id for o in DEFAULT_OFFERS]


@pytest.mark.unit
def test_empty_offers_file_rejected(tmp_path):
    """A file with no offers is a configuration error."""
    path = tmp_path / "offers.yaml"
    path.write_text("offers: []\n")

    with pytest.raises(BanditConfigError):
        load_offers(str(path))


@pytest.mark.unit
def test_unknown_type_rejected():
    """Offer types outside the closed set are rejected."""
    with pytest.raises(BanditConfigError):
        offer_from_dict({"id": "x", "type": "coupon", "cost": 0.1})


@pytest.mark.unit
def test_missing_cost_rejected():
    with pytest.raises(BanditConfigError):
        offer_from_dict({"id": "x", "type": "pause"})


@pytest.mark.unit
def test_offers_are_immutable():
    """Offers cannot be changed after construction."""
    offer = DEFAULT_OFFERS[0]

    with pytest.raises(AttributeError):
        offer.cost = 0.9
