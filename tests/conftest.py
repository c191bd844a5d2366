import os
import tempfile

# the engine is created at import time: point it at a scratch db first
_TMP = tempfile.mkdtemp(prefix="bakery-pos-tests-")
os.environ["BAKERY_POS_DB_URL"] = f"sqlite:///{os.path.join(_TMP, 'test.db')}"
os.environ["BAKERY_POS_CONFIG"] = os.path.join(_TMP, "config.json")

from typing import Generator

import pytest
from fastapi.testclient import TestClient

from bakery_pos.checkout.types import (
    AddonGroupSpec,
    AddonOptionSpec,
    OptionSpec,
    OptionValueSpec,
    ProductSpec,
    SubOptionSpec,
    VariantSpec,
)


@pytest.fixture()
def cake() -> ProductSpec:
    """Size x Colour cake; only Large/Pink has a variant price."""
    return ProductSpec(
        id="cake",
        name="Celebration Cake",
        base_price_cents=4000,
        category="cakes",
        options=(
            OptionSpec(id="size", name="Size", position=0, values=(
                OptionValueSpec(id="small", option_id="size", value="Small"),
                OptionValueSpec(id="large", option_id="size", value="Large", price_adjustment_cents=1500),
            )),
            OptionSpec(id="colour", name="Colour", position=1, values=(
                OptionValueSpec(id="white", option_id="colour", value="White"),
                OptionValueSpec(id="pink", option_id="colour", value="Pink", price_adjustment_cents=500),
            )),
        ),
        variants=(
            VariantSpec(id="large-pink", price_cents=5000, values=(("size", "large"), ("colour", "pink"))),
        ),
    )


@pytest.fixture()
def bouquet() -> ProductSpec:
    return ProductSpec(
        id="bouquet",
        name="Rose Bouquet",
        base_price_cents=20000,
        category="flowers",
        addons=(
            AddonGroupSpec(id="wrap", name="Wrapping", required=True, min_selections=1, max_selections=1, options=(
                AddonOptionSpec(id="classic", name="Classic wrap"),
                AddonOptionSpec(id="luxury", name="Luxury wrap", price_cents=3000),
            )),
            AddonGroupSpec(id="extras", name="Extras", max_selections=2, options=(
                AddonOptionSpec(id="balloon", name="Balloon", price_cents=2000, sub_options=(
                    SubOptionSpec(id="heart", name="Heart shape", price_cents=500),
                    SubOptionSpec(id="star", name="Star shape", price_cents=500),
                )),
                AddonOptionSpec(id="card", name="Greeting card", price_cents=1000,
                                allows_custom_text=True, max_text_length=10),
            )),
        ),
    )


@pytest.fixture()
def custom_cake() -> ProductSpec:
    return ProductSpec(
        id="custom",
        name="Custom Cake",
        base_price_cents=0,
        category="cakes",
        allow_custom_price=True,
        allow_custom_images=True,
        requires_design=True,
        addons=(
            AddonGroupSpec(id="topper", name="Topper", options=(
                AddonOptionSpec(id="msg", name="Message topper", price_cents=1500, allows_custom_text=True),
            )),
        ),
    )


@pytest.fixture()
def gift_set() -> ProductSpec:
    return ProductSpec(id="set", name="Gift Set", base_price_cents=40000, category="sets")


@pytest.fixture()
def candle() -> ProductSpec:
    # no category, no team
    return ProductSpec(id="candle", name="Candle", base_price_cents=10000)


@pytest.fixture(scope="session")
def app():
    from bakery_pos.main import app as fastapi_app
    return fastapi_app


@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    from bakery_pos import views_pos

    with TestClient(app) as c:
        yield c
    views_pos.SESSIONS.clear()
    app.dependency_overrides.clear()
