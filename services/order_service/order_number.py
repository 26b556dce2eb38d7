"""
Order number allocation: ``ORD`` + yymmdd + a 4-digit per-day sequence.

The sequence lives in one counter row per day. Allocation inserts the row if
it is missing (ignoring a concurrent insert of the same day) and then bumps it
with a single UPDATE ... RETURNING, which row-locks the counter until the
order transaction ends. Two concurrent placements therefore always get
different numbers, and a rolled-back placement gives its number back.
"""
import os
from datetime import date, datetime
from zoneinfo import ZoneInfo
from sqlalchemy import update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession
from .models import OrderNumberSequence

ORDER_NUMBER_PREFIX = "ORD"
ORDER_NUMBER_TIMEZONE = ZoneInfo(os.getenv("ORDER_NUMBER_TIMEZONE", "UTC"))

_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def format_order_number(day: date, sequence: int) -> str:
    return f"{ORDER_NUMBER_PREFIX}{day:%y%m%d}{sequence:04d}"


def order_day(now: datetime = None) -> date:
    now = now or datetime.now(ORDER_NUMBER_TIMEZONE)
    if now.tzinfo is not None:
        now = now.astimezone(ORDER_NUMBER_TIMEZONE)
    return now.date()


async def next_order_number(db: AsyncSession, now: datetime = None) -> str:
    """Allocate the next number for today. Must run inside the order's transaction."""
    day = order_day(now)

    dialect = db.get_bind().dialect.name
    insert = _INSERTS.get(dialect)
    if insert is None:
        raise RuntimeError(f"Order numbering does not support the {dialect} dialect")

    await db.execute(
        insert(OrderNumberSequence)
        .values(day=day, last_value=0)
        .on_conflict_do_nothing(index_elements=["day"])
    )
    result = await db.execute(
        update(OrderNumberSequence)
        .where(OrderNumberSequence.day == day)
        .values(last_value=OrderNumberSequence.last_value + 1)
        .returning(OrderNumberSequence.last_value)
        .execution_options(synchronize_session=False)
    )
    return format_order_number(day, result.scalar_one())
