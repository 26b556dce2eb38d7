from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from .models import Customer

class CustomerRepository:
    @staticmethod
    async def exists(db: AsyncSession, customer_id) -> bool:
        result = await db.execute(select(Customer.id).where(Customer.id == customer_id))
        return result.scalar_one_or_none() is not None
