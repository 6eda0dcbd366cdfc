"""Utilities for allocating order numbers."""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession


def format_order_number(prefix: str, current: int) -> str:
    """Return the printable order number, e.g. ``AH000042``."""
    return f"{prefix.upper()}{current:06d}"


async def next_order_number(
    session: AsyncSession, university_id: int, prefix: str
) -> str:
    """Return the next order number for ``university_id``.

    The per-tenant counter row is created if missing and atomically
    incremented, so two concurrent checkouts never receive the same value.
    The caller owns the transaction: the increment is rolled back together
    with the order if anything later fails.
    """
    stmt = text(
        """
        INSERT INTO order_sequences (university_id, current)
        VALUES (:university_id, 1)
        ON CONFLICT (university_id)
        DO UPDATE SET current = order_sequences.current + 1
        RETURNING current
        """
    )
    result = await session.execute(stmt, {"university_id": university_id})
    current = result.scalar_one()
    return format_order_number(prefix, current)
