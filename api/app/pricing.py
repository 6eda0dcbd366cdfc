"""Cart pricing and tax helpers.

All arithmetic uses :class:`~decimal.Decimal` with round-half-up at the
currency minor unit. :func:`price_lines` is pure; :func:`quote_cart` resolves
each line against the catalog first.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Mapping, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from .errors import InvalidItem, NotFound, ValidationError

ROUND = Decimal("0.01")


def to_money(value: object) -> Decimal:
    """Return ``value`` as a Decimal rounded half-up to 0.01."""

    return Decimal(str(value)).quantize(ROUND, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class CartLine:
    item_id: int
    quantity: int
    variant_id: int | None = None


@dataclass(frozen=True)
class PricedLine:
    """A cart line with its unit price resolved from the catalog."""

    item_id: int
    variant_id: int | None
    name: str
    variant_name: str | None
    quantity: int
    unit_price: Decimal

    @property
    def line_total(self) -> Decimal:
        return to_money(self.unit_price * self.quantity)

    def as_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "variant_id": self.variant_id,
            "name": self.name,
            "variant_name": self.variant_name,
            "quantity": self.quantity,
            "unit_price": float(self.unit_price),
            "line_total": float(self.line_total),
        }


@dataclass(frozen=True)
class Quote:
    lines: list[PricedLine] = field(default_factory=list)
    subtotal: Decimal = Decimal("0.00")
    tax: Decimal = Decimal("0.00")
    total: Decimal = Decimal("0.00")
    tax_rate: Decimal = Decimal("0")

    def as_dict(self) -> dict:
        return {
            "lines": [line.as_dict() for line in self.lines],
            "subtotal": float(self.subtotal),
            "tax": float(self.tax),
            "total": float(self.total),
            "tax_rate": float(self.tax_rate),
        }


def parse_cart(raw: Iterable[Mapping[str, object]]) -> list[CartLine]:
    """Validate and convert raw cart entries.

    Every entry needs a positive integer ``quantity``; all problems are
    reported together.
    """

    lines: list[CartLine] = []
    errors: list[str] = []
    for idx, entry in enumerate(raw):
        qty = entry.get("quantity")
        if isinstance(qty, bool) or not isinstance(qty, int) or qty <= 0:
            errors.append(f"items[{idx}].quantity must be a positive integer")
            continue
        variant = entry.get("variant_id")
        lines.append(
            CartLine(
                item_id=int(entry["item_id"]),
                quantity=qty,
                variant_id=None if variant is None else int(variant),
            )
        )
    if errors:
        raise ValidationError("invalid cart", errors=errors)
    if not lines:
        raise ValidationError("cart is empty", errors=["items must not be empty"])
    return lines


def price_lines(lines: Sequence[PricedLine], tax_rate: Decimal | str | float) -> Quote:
    """Compute subtotal, tax and total for already resolved ``lines``."""

    rate = Decimal(str(tax_rate))
    subtotal = to_money(sum((line.line_total for line in lines), Decimal("0")))
    tax = to_money(subtotal * rate)
    return Quote(
        lines=list(lines),
        subtotal=subtotal,
        tax=tax,
        total=subtotal + tax,
        tax_rate=rate,
    )


async def quote_cart(
    session: AsyncSession,
    university_id: int,
    cart: Sequence[CartLine],
    tax_rate: Decimal,
) -> Quote:
    """Resolve every line of ``cart`` and price it.

    The first unresolvable line aborts the whole cart with
    :class:`InvalidItem` naming the offending id.
    """

    from .repos_sqlalchemy import menu_repo_sql

    if not cart:
        raise ValidationError("cart is empty", errors=["items must not be empty"])
    priced: list[PricedLine] = []
    for line in cart:
        try:
            resolved = await menu_repo_sql.resolve_variant(
                session, line.item_id, line.variant_id, university_id=university_id
            )
        except NotFound as exc:
            reason = "variant_not_found" if exc.resource == "variant" else "not_found"
            raise InvalidItem(line.item_id, line.variant_id, reason=reason) from exc
        priced.append(
            PricedLine(
                item_id=resolved.item.id,
                variant_id=resolved.variant.id if resolved.variant else None,
                name=resolved.item.name,
                variant_name=resolved.variant.name if resolved.variant else None,
                quantity=line.quantity,
                unit_price=resolved.unit_price,
            )
        )
    return price_lines(priced, tax_rate)


__all__ = [
    "CartLine",
    "PricedLine",
    "Quote",
    "parse_cart",
    "price_lines",
    "quote_cart",
    "to_money",
]
