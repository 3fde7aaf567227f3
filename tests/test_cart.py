from decimal import Decimal

import pytest

from storefront.core.exceptions import FractionalSelectionError, ValidationError
from storefront.models import CouponType, PizzaSize
from storefront.schemas.pricing_schemas import FulfillmentMode, QuoteLine, QuoteRequest
from storefront.services.cart_service import Cart, build_cart_lines, quote_cart
from storefront.services.fractional_service import confirm_fractional_selection, load_flavor_catalog

from tests.conftest import NOW


# -----------------------
# Half-and-half selection
# -----------------------
async def test_confirm_selection_uses_dearer_flavor(db, seed):
    line = await confirm_fractional_selection(
        db, seed.business.id, seed.pizza.id, seed.calabresa.id, seed.margherita.id, PizzaSize.GRANDE, 2
    )

    assert line.unit_price == Decimal("42.90")
    assert line.quantity == 2
    assert line.fractional.flavor1_name == "Calabresa"
    assert line.fractional.flavor2_name == "Margherita"
    assert line.name == "Pizza - Grande (1/2 Calabresa + 1/2 Margherita)"


async def test_confirm_selection_rejects_bad_input(db, seed):
    with pytest.raises(FractionalSelectionError):
        # portuguesa has no broto price
        await confirm_fractional_selection(
            db, seed.business.id, seed.pizza.id, seed.calabresa.id, seed.portuguesa.id, PizzaSize.BROTO
        )
    with pytest.raises(FractionalSelectionError):
        await confirm_fractional_selection(
            db, seed.business.id, seed.pizza.id, seed.calabresa.id, seed.retired.id, PizzaSize.GRANDE
        )
    with pytest.raises(FractionalSelectionError):
        await confirm_fractional_selection(
            db, seed.business.id, seed.burger.id, seed.calabresa.id, seed.margherita.id, PizzaSize.GRANDE
        )
    with pytest.raises(FractionalSelectionError):
        await confirm_fractional_selection(
            db, seed.business.id, seed.pizza.id, seed.calabresa.id, seed.margherita.id, PizzaSize.GRANDE, 0
        )


async def test_catalog_respects_item_restriction(db, seed):
    open_catalog = await load_flavor_catalog(db, seed.business.id, seed.pizza.id)
    restricted = await load_flavor_catalog(db, seed.business.id, seed.special.id)

    assert not open_catalog.restricted
    assert set(open_catalog.flavors) == {seed.calabresa.id, seed.margherita.id, seed.portuguesa.id}
    assert restricted.restricted
    assert set(restricted.flavors) == {seed.calabresa.id, seed.portuguesa.id}

    with pytest.raises(FractionalSelectionError):
        await confirm_fractional_selection(
            db, seed.business.id, seed.special.id, seed.calabresa.id, seed.margherita.id, PizzaSize.GRANDE
        )


# -----------------------
# Cart
# -----------------------
async def test_cart_lines_merge_and_decrement(db, seed):
    cart = Cart(seed.business.id, Decimal("8.00"))
    cart.add_item(seed.burger)
    cart.add_item(seed.burger)
    cart.add_item(seed.soda, 2)

    assert [l.quantity for l in cart.lines] == [2, 2]
    assert cart.subtotal == Decimal("73.00")

    cart.decrement(str(seed.soda.id))
    cart.decrement(str(seed.soda.id))
    assert [l.name for l in cart.lines] == ["Burger"]

    with pytest.raises(ValidationError):
        cart.increment("missing")


async def test_cart_keeps_distinct_pairings_apart(db, seed):
    cart = Cart(seed.business.id)
    a = await confirm_fractional_selection(
        db, seed.business.id, seed.pizza.id, seed.calabresa.id, seed.margherita.id, PizzaSize.GRANDE
    )
    b = await confirm_fractional_selection(
        db, seed.business.id, seed.pizza.id, seed.calabresa.id, seed.portuguesa.id, PizzaSize.GRANDE
    )
    cart.add_line(a)
    cart.add_line(b)
    cart.add_line(a)

    assert len(cart.lines) == 2
    assert cart.lines[0].quantity == 2
    assert cart.subtotal == Decimal("130.80")


async def test_fractional_item_needs_selection(db, seed):
    with pytest.raises(FractionalSelectionError):
        Cart(seed.business.id).add_item(seed.pizza)


async def test_coupon_dropped_when_cart_falls_below_minimum(db, seed, make_coupon):
    await make_coupon("PROMO10", CouponType.PERCENT, "10", min_order_value="50")
    cart = Cart(seed.business.id, Decimal("8.00"), mode=FulfillmentMode.DELIVERY)
    cart.add_item(seed.burger, 2)

    result = await cart.apply_coupon(db, "promo10", NOW)
    assert result.ok
    assert cart.pricing().total == Decimal("62.00")

    cart.decrement(str(seed.burger.id))
    # stale until refreshed, and never discounted meanwhile
    assert cart.pricing().coupon_stale
    assert cart.pricing().discount == Decimal("0.00")

    pricing = await cart.refresh(db, NOW)
    assert cart.applied_coupon is None
    assert pricing.total == Decimal("38.00")


async def test_coupon_revalidated_after_cart_grows(db, seed, make_coupon):
    await make_coupon("PROMO10", CouponType.PERCENT, "10")
    cart = Cart(seed.business.id, mode=FulfillmentMode.PICKUP)
    cart.add_item(seed.burger)
    await cart.apply_coupon(db, "PROMO10", NOW)

    cart.increment(str(seed.burger.id))
    pricing = await cart.refresh(db, NOW)

    assert pricing.discount == Decimal("6.00")
    assert pricing.total == Decimal("54.00")

    cart.remove_coupon()
    assert cart.pricing().total == Decimal("60.00")


async def test_build_cart_lines_uses_menu_prices(db, seed):
    lines = await build_cart_lines(db, seed.business.id, [
        QuoteLine(menu_item_id=seed.burger.id, quantity=1),
        QuoteLine(menu_item_id=seed.pizza.id, quantity=1, size=PizzaSize.BROTO,
                  flavor1_id=seed.margherita.id, flavor2_id=seed.calabresa.id),
    ])

    assert [l.unit_price for l in lines] == [Decimal("30.00"), Decimal("32.00")]

    with pytest.raises(ValidationError):
        await build_cart_lines(db, seed.business.id, [QuoteLine(menu_item_id=seed.hidden.id, quantity=1)])
    with pytest.raises(ValidationError):
        await build_cart_lines(db, seed.business.id, [QuoteLine(menu_item_id=seed.pizza.id, quantity=1)])


async def test_quote_reports_coupon_error(db, seed, make_coupon):
    await make_coupon("MIN50", min_order_value="50")
    quote = await quote_cart(
        db,
        QuoteRequest(
            business_id=seed.business.id,
            items=[QuoteLine(menu_item_id=seed.burger.id, quantity=1)],
            coupon_code="MIN50",
        ),
        now=NOW,
    )

    assert quote.coupon_reason == "below_minimum"
    assert quote.pricing.discount == Decimal("0.00")
    assert quote.pricing.total == Decimal("38.00")
