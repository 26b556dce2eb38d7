from datetime import datetime, time, timedelta, timezone
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import func, select
from sqlalchemy.orm import selectinload
from .models import Order
from .schemas import OrderListQuery

class OrderRepository:
    """Order persistence. Callers own the transaction; nothing here commits."""

    @staticmethod
    async def add_order(db: AsyncSession, order: Order):
        db.add(order)
        await db.flush()
        return order

    @staticmethod
    async def get_order(db: AsyncSession, order_id, lock: bool = False):
        stmt = (
            select(Order)
            .where(Order.id == order_id)
            .options(selectinload(Order.items), selectinload(Order.customer))
            .execution_options(populate_existing=True)
        )
        if lock:
            stmt = stmt.with_for_update(of=Order)
        result = await db.execute(stmt)
        return result.scalars().first()

    @staticmethod
    async def delete_order(db: AsyncSession, order: Order):
        await db.delete(order)
        await db.flush()

    @staticmethod
    async def list_orders(db: AsyncSession, query: OrderListQuery):
        filters = []
        if query.status is not None:
            filters.append(Order.status == query.status)
        if query.customer_id is not None:
            filters.append(Order.customer_id == query.customer_id)
        if query.order_type is not None:
            filters.append(Order.order_type == query.order_type)
        if query.search:
            filters.append(Order.order_number.contains(query.search, autoescape=True))
        if query.date_from is not None:
            filters.append(Order.created_at >= datetime.combine(query.date_from, time.min, timezone.utc))
        if query.date_to is not None:
            # date_to is inclusive of the whole day
            end = datetime.combine(query.date_to + timedelta(days=1), time.min, timezone.utc)
            filters.append(Order.created_at < end)

        total = (
            await db.execute(select(func.count()).select_from(Order).where(*filters))
        ).scalar_one()

        result = await db.execute(
            select(Order)
            .where(*filters)
            .options(selectinload(Order.items), selectinload(Order.customer))
            .order_by(Order.created_at.desc())
            .offset((query.page - 1) * query.limit)
            .limit(query.limit)
        )
        return result.scalars().all(), total
