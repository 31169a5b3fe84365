from decimal import ROUND_HALF_UP, Decimal

MONEY_QUANT = Decimal("0.01")
ZERO = Decimal("0.00")

ITEM_FIELDS = ("description", "quantity", "unit_price", "custom_fields")


def to_money(value):
    return Decimal(value).quantize(MONEY_QUANT, rounding=ROUND_HALF_UP)


def line_total(quantity, unit_price, override=None):
    """A manual override wins; otherwise quantity x unit price, rounded to cents."""
    if override is not None:
        return to_money(override)
    if quantity is None or unit_price is None:
        return ZERO
    return to_money(Decimal(quantity) * Decimal(unit_price))


def calculate_total(item_totals, cash_discount=None):
    """Sum of the items' own totals minus the cash discount.

    Item totals are trusted as stored, they may be manual overrides. The
    result is not floored, an oversized discount yields a negative total.
    """
    total = sum((Decimal(value) for value in item_totals), ZERO)
    if cash_discount is not None:
        total -= Decimal(cash_discount)
    return to_money(total)


def recalculate_quote_total(quote):
    quote.total_price = calculate_total(
        quote.items.values_list("total_price", flat=True),
        quote.cash_discount,
    )
    return quote.total_price


def apply_item_changes(item, data):
    """Copy the supplied fields onto `item` and settle its total.

    `total_price` in `data` is an override. Without one, the total is derived
    again only when quantity or unit price changed and both are known.
    """
    price_inputs_changed = item.pk is None
    for field in ITEM_FIELDS:
        if field not in data:
            continue
        value = data[field]
        if field in ("quantity", "unit_price") and value != getattr(item, field):
            price_inputs_changed = True
        setattr(item, field, value)

    override = data.get("total_price")
    if override is not None:
        item.total_price = to_money(override)
    elif price_inputs_changed and item.quantity is not None and item.unit_price is not None:
        item.total_price = line_total(item.quantity, item.unit_price)
    elif item.pk is None:
        item.total_price = ZERO
    return item
