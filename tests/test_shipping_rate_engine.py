"""Per-vendor shipping quotes: flat and distance pricing, thresholds, partial carts."""
import asyncio
import uuid
from datetime import datetime
from decimal import Decimal
from zoneinfo import ZoneInfo

import pytest

from app.schemas.shipping import LineItem, VendorQuoteErrorCode, VendorQuoteStatus
from app.services.shipping_rate_engine import (
    ShippingRateEngine,
    haversine_km,
    is_peak_hour,
    partition_cart,
)

IST = ZoneInfo("Asia/Kolkata")


def at(hour: int, minute: int = 0) -> datetime:
    return datetime(2026, 1, 5, hour, minute, tzinfo=IST)


@pytest.fixture
def engine(db):
    return ShippingRateEngine(db, clock=lambda: at(12), express_surcharge=Decimal("50"), currency="INR")


def line(vendor, unit_price, quantity=1, product=None, weight_kg=None) -> LineItem:
    return LineItem(
        vendor_id=vendor if isinstance(vendor, str) else str(vendor.id),
        product_id=product.id if product is not None else None,
        quantity=quantity,
        unit_price=Decimal(str(unit_price)),
        weight_kg=Decimal(str(weight_kg)) if weight_kg is not None else None,
    )


# ==========================================
# Pure helpers
# ==========================================

def test_partition_cart_keeps_first_seen_order():
    a1 = LineItem(vendor_id="a", name="a1", quantity=1, unit_price=Decimal("10"))
    b1 = LineItem(vendor_id="b", name="b1", quantity=1, unit_price=Decimal("10"))
    a2 = LineItem(vendor_id="a", name="a2", quantity=2, unit_price=Decimal("10"))

    groups = partition_cart([a1, b1, a2])

    assert [g.vendor_id for g in groups] == ["a", "b"]
    assert [i.name for i in groups[0].items] == ["a1", "a2"]
    assert groups[0].order_value == Decimal("30")
    assert groups[0].total_weight == Decimal("3")


def test_haversine_one_tenth_degree_of_latitude():
    assert haversine_km(12.9716, 77.5946, 13.0716, 77.5946) == pytest.approx(11.1195, abs=1e-3)


@pytest.mark.parametrize("now, expected", [
    (at(18, 0), True),
    (at(21, 0), True),
    (at(21, 1), False),
    (at(17, 59), False),
])
def test_peak_window_is_inclusive(now, expected):
    assert is_peak_hour([{"start": "18:00", "end": "21:00"}], now) is expected


@pytest.mark.parametrize("now, expected", [(at(23), True), (at(1), True), (at(3), False)])
def test_peak_window_wraps_midnight(now, expected):
    assert is_peak_hour([{"start": "22:00", "end": "02:00"}], now) is expected


# ==========================================
# Flat pricing
# ==========================================

async def test_below_threshold_charges_vendor_base(engine, seed, vendor_factory, make_location):
    vendor = await seed(vendor_factory())

    quote = await engine.quote([line(vendor, 500)], make_location())

    vq = quote.vendor_quotes[0]
    assert vq.status == VendorQuoteStatus.OK
    assert vq.charge == Decimal("50.00")
    assert vq.free_shipping is False
    assert vq.pricing_model == "FLAT"
    assert vq.estimated_days == 2
    assert quote.total == Decimal("50.00")
    assert quote.partial is False
    assert quote.currency == "INR"


@pytest.mark.parametrize("order_value, expected", [
    ("998.99", Decimal("50.00")),
    ("999", Decimal("0.00")),
    ("1000", Decimal("0.00")),
])
async def test_free_shipping_threshold_is_inclusive(
    engine, seed, vendor_factory, make_location, order_value, expected
):
    vendor = await seed(vendor_factory())

    quote = await engine.quote([line(vendor, order_value)], make_location())

    assert quote.total == expected
    assert quote.vendor_quotes[0].free_shipping is (expected == 0)


async def test_threshold_uses_group_value_not_cart_value(engine, seed, vendor_factory, make_location):
    big = vendor_factory(name="Big Vendor")
    small = vendor_factory(name="Small Vendor")
    await seed(big, small)

    quote = await engine.quote([line(big, 1200), line(small, 300)], make_location())

    charges = {vq.vendor_name: vq.charge for vq in quote.vendor_quotes}
    assert charges == {"Big Vendor": Decimal("0.00"), "Small Vendor": Decimal("50.00")}
    assert quote.total == Decimal("50.00")


async def test_product_rates_add_to_vendor_base(engine, seed, vendor_factory, product_factory, make_location):
    vendor = vendor_factory()
    rated = product_factory(vendor, base_shipping_rate=Decimal("20"))
    plain = product_factory(vendor)
    await seed(vendor, rated, plain)

    quote = await engine.quote(
        [line(vendor, 100, quantity=2, product=rated), line(vendor, 100, product=plain)],
        make_location(),
    )

    vq = quote.vendor_quotes[0]
    assert vq.charge == Decimal("90.00")
    assert vq.breakdown["product_rates"] == 40.0
    assert vq.breakdown["vendor_base_rate"] == 50.0


async def test_unconfigured_vendor_rate_uses_policy_charge(engine, seed, vendor_factory, make_location):
    vendor = await seed(vendor_factory(base_shipping_rate=None))

    metro = await engine.quote([line(vendor, 100)], make_location())
    other = await engine.quote(
        [line(vendor, 100)], make_location(pincode="576101", area="Manipal", district="Udupi")
    )

    assert metro.total == Decimal("30.00")
    assert other.total == Decimal("50.00")
    assert metro.vendor_quotes[0].breakdown["vendor_rate_configured"] is False


async def test_platform_items_use_platform_terms(engine, make_location):
    quote = await engine.quote([line("platform", 200)], make_location())

    vq = quote.vendor_quotes[0]
    assert vq.vendor_id == "platform"
    assert vq.success is True
    assert vq.charge == Decimal("30.00")


async def test_express_adds_surcharge_and_shortens_estimate(engine, seed, vendor_factory, make_location):
    vendor = await seed(vendor_factory())

    quote = await engine.quote(
        [line(vendor, 100)],
        make_location(pincode="576101", area="Manipal", district="Udupi"),
        express=True,
    )

    vq = quote.vendor_quotes[0]
    assert vq.express_applied is True
    assert vq.express_surcharge == Decimal("50.00")
    assert vq.charge == Decimal("100.00")
    assert vq.estimated_days == 2


async def test_free_shipping_waives_express_surcharge(engine, seed, vendor_factory, make_location):
    vendor = await seed(vendor_factory())

    quote = await engine.quote([line(vendor, 1500)], make_location(), express=True)

    vq = quote.vendor_quotes[0]
    assert vq.free_shipping is True
    assert vq.express_applied is True
    assert vq.express_surcharge == Decimal("0.00")
    assert vq.charge == Decimal("0.00")
    assert vq.estimated_days == 1


async def test_express_blocked_by_product(engine, seed, vendor_factory, product_factory, make_location):
    vendor = vendor_factory()
    product = product_factory(vendor, express_delivery_available=False, max_delivery_days=6)
    await seed(vendor, product)

    quote = await engine.quote([line(vendor, 100, product=product)], make_location(), express=True)

    vq = quote.vendor_quotes[0]
    assert vq.express_applied is False
    assert vq.charge == Decimal("50.00")
    assert vq.estimated_days == 6


# ==========================================
# Failures and partial quotes
# ==========================================

async def test_denying_vendor_makes_quote_partial(engine, seed, vendor_factory, make_location):
    denying = vendor_factory(name="Denying Vendor", excluded_pincodes=["560001"])
    shipping = vendor_factory(name="Shipping Vendor")
    await seed(denying, shipping)
    items = [line(denying, 400), line(shipping, 400)]

    quote = await engine.quote(items, make_location())

    by_name = {vq.vendor_name: vq for vq in quote.vendor_quotes}
    failed = by_name["Denying Vendor"]
    assert quote.partial is True
    assert quote.total == Decimal("50.00")
    assert failed.success is False
    assert failed.status == VendorQuoteStatus.FAILED
    assert failed.error_code == VendorQuoteErrorCode.NOT_SERVICEABLE
    assert failed.charge == Decimal("0.00")
    assert len(failed.items) == 1
    assert by_name["Shipping Vendor"].charge == Decimal("50.00")


async def test_vendor_allow_list(engine, seed, vendor_factory, make_location):
    vendor = await seed(vendor_factory(allowed_pincodes=["560001"]))

    inside = await engine.quote([line(vendor, 100)], make_location(pincode="560001"))
    outside = await engine.quote([line(vendor, 100)], make_location(pincode="560002"))

    assert inside.vendor_quotes[0].success is True
    assert outside.vendor_quotes[0].error_code == VendorQuoteErrorCode.NOT_SERVICEABLE
    assert outside.vendor_quotes[0].breakdown["reason"] == "NOT_IN_ALLOW_LIST"


async def test_product_exclusion_fails_its_vendor_group(engine, seed, vendor_factory, product_factory, make_location):
    vendor = vendor_factory()
    product = product_factory(vendor, exclude_pincodes=["560001"])
    await seed(vendor, product)

    quote = await engine.quote([line(vendor, 100, product=product)], make_location())

    assert quote.vendor_quotes[0].error_code == VendorQuoteErrorCode.NOT_SERVICEABLE
    assert quote.partial is True
    assert quote.total == Decimal("0.00")


@pytest.mark.parametrize("vendor_id", [str(uuid.uuid4()), "not-a-uuid"])
async def test_unknown_vendor(engine, make_location, vendor_id):
    quote = await engine.quote([line(vendor_id, 100)], make_location())

    assert quote.vendor_quotes[0].error_code == VendorQuoteErrorCode.VENDOR_NOT_FOUND
    assert quote.partial is True


async def test_inactive_vendor_is_not_found(engine, seed, vendor_factory, make_location):
    vendor = await seed(vendor_factory(is_active=False))

    quote = await engine.quote([line(vendor, 100)], make_location())

    assert quote.vendor_quotes[0].error_code == VendorQuoteErrorCode.VENDOR_NOT_FOUND


async def test_shipping_disabled_vendor(engine, seed, vendor_factory, make_location):
    vendor = await seed(vendor_factory(is_shipping_enabled=False))

    quote = await engine.quote([line(vendor, 100)], make_location())

    vq = quote.vendor_quotes[0]
    assert vq.error_code == VendorQuoteErrorCode.SHIPPING_DISABLED
    assert vq.shipping_disabled is True
    assert vq.message == "Shipping disabled, contact vendor"


async def test_empty_cart(engine, make_location):
    quote = await engine.quote([], make_location())

    assert quote.vendor_quotes == []
    assert quote.total == Decimal("0.00")
    assert quote.partial is False


async def test_vendor_quotes_sorted_by_vendor_id(engine, seed, vendor_factory, make_location):
    vendors = [vendor_factory(name=f"Vendor {i}") for i in range(3)]
    await seed(*vendors)

    quote = await engine.quote([line(v, 100) for v in vendors], make_location())

    ids = [vq.vendor_id for vq in quote.vendor_quotes]
    assert ids == sorted(ids)


# ==========================================
# Distance pricing
# ==========================================

async def test_distance_pricing(engine, seed, vendor_factory, distance_config_factory, make_location):
    vendor = vendor_factory()
    await seed(vendor, distance_config_factory(vendor))

    quote = await engine.quote([line(vendor, 100)], make_location(latitude=13.0716, longitude=77.5946))

    vq = quote.vendor_quotes[0]
    assert vq.pricing_model == "DISTANCE"
    assert vq.distance_km == pytest.approx(11.12, abs=0.01)
    assert vq.charge == Decimal("105.60")


async def test_peak_hours_multiply_charge(db, seed, vendor_factory, distance_config_factory, make_location):
    vendor = vendor_factory()
    await seed(vendor, distance_config_factory(vendor, peak_hours=[{"start": "18:00", "end": "21:00"}]))
    cart = [line(vendor, 100)]

    peak = await ShippingRateEngine(db, clock=lambda: at(18, 30)).quote(cart, make_location())
    off_peak = await ShippingRateEngine(db, clock=lambda: at(12)).quote(cart, make_location())

    assert peak.total == Decimal("60.00")
    assert off_peak.total == Decimal("50.00")


async def test_peak_hours_read_in_configured_timezone(db, seed, vendor_factory, distance_config_factory, make_location):
    vendor = vendor_factory()
    await seed(vendor, distance_config_factory(vendor, peak_hours=[{"start": "18:00", "end": "21:00"}]))
    utc_clock = lambda: datetime(2026, 1, 5, 13, 0, tzinfo=ZoneInfo("UTC"))  # 18:30 IST

    quote = await ShippingRateEngine(db, clock=utc_clock).quote([line(vendor, 100)], make_location())

    assert quote.total == Decimal("60.00")


async def test_distance_weight_and_express(engine, seed, vendor_factory, distance_config_factory, make_location):
    vendor = vendor_factory()
    await seed(vendor, distance_config_factory(vendor, weight_pricing_enabled=True))

    quote = await engine.quote([line(vendor, 100, weight_kg=3)], make_location(), express=True)

    vq = quote.vendor_quotes[0]
    assert vq.base_charge == Decimal("60.00")
    assert vq.express_surcharge == Decimal("30.00")
    assert vq.charge == Decimal("90.00")
    assert vq.estimated_days == 1


async def test_beyond_max_distance_is_out_of_range(engine, seed, vendor_factory, distance_config_factory, make_location):
    vendor = vendor_factory()
    await seed(vendor, distance_config_factory(vendor, max_delivery_distance_km=Decimal("5")))

    quote = await engine.quote([line(vendor, 100)], make_location(latitude=13.0716, longitude=77.5946))

    vq = quote.vendor_quotes[0]
    assert vq.error_code == VendorQuoteErrorCode.OUT_OF_RANGE
    assert vq.distance_km == pytest.approx(11.12, abs=0.01)
    assert quote.partial is True


async def test_distance_free_shipping_drops_express(engine, seed, vendor_factory, distance_config_factory, make_location):
    vendor = vendor_factory()
    await seed(vendor, distance_config_factory(vendor))

    quote = await engine.quote([line(vendor, 1500)], make_location(), express=True)

    assert quote.total == Decimal("0.00")


async def test_inactive_distance_config_prices_flat(engine, seed, vendor_factory, distance_config_factory, make_location):
    vendor = vendor_factory()
    await seed(vendor, distance_config_factory(vendor, is_active=False))

    quote = await engine.quote([line(vendor, 100)], make_location(latitude=13.0716, longitude=77.5946))

    assert quote.vendor_quotes[0].pricing_model == "FLAT"
    assert quote.total == Decimal("50.00")


async def test_missing_coordinates_price_flat(engine, seed, vendor_factory, distance_config_factory, make_location):
    vendor = vendor_factory()
    await seed(vendor, distance_config_factory(vendor))

    quote = await engine.quote([line(vendor, 100)], make_location(latitude=None, longitude=None))

    assert quote.vendor_quotes[0].pricing_model == "FLAT"
    assert quote.total == Decimal("50.00")


# ==========================================
# Estimate
# ==========================================

@pytest.mark.parametrize("order_value, expected", [(Decimal("500"), Decimal("50.00")), (Decimal("1500"), Decimal("0.00"))])
async def test_estimate(engine, seed, vendor_factory, make_location, order_value, expected):
    vendor = await seed(vendor_factory())

    vq = await engine.estimate(str(vendor.id), make_location(), order_value=order_value)

    assert vq.success is True
    assert vq.charge == expected
    assert vq.order_value == order_value


async def test_quoting_twice_gives_identical_charges(engine, seed, vendor_factory, product_factory, make_location):
    first_vendor = vendor_factory(name="First")
    second_vendor = vendor_factory(name="Second", base_shipping_rate=None)
    product = product_factory(first_vendor, base_shipping_rate=Decimal("15"))
    await seed(first_vendor, second_vendor, product)
    cart = [line(first_vendor, 300, quantity=2, product=product), line(second_vendor, 450), line("platform", 99)]

    first = await engine.quote(cart, make_location())
    second = await engine.quote(cart, make_location())

    assert [q.charge for q in first.vendor_quotes] == [q.charge for q in second.vendor_quotes]
    assert first.total == second.total
    assert first.total == sum(q.charge for q in first.vendor_quotes if q.success)


async def test_unexpected_error_cancels_other_vendor_groups(engine, make_location, monkeypatch):
    broken = str(uuid.uuid4())
    slow = str(uuid.uuid4())
    cancelled = []

    async def price_group(group, vendor, products, location, express):
        if group.vendor_id == broken:
            raise RuntimeError("connection lost")
        try:
            await asyncio.sleep(10)
        except asyncio.CancelledError:
            cancelled.append(group.vendor_id)
            raise

    monkeypatch.setattr(engine, "_price_group", price_group)

    with pytest.raises(RuntimeError, match="connection lost"):
        await engine.quote([line(slow, 100), line(broken, 100)], make_location())

    assert cancelled == [slow]
