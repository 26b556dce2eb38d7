from typing import Annotated
from uuid import UUID
from fastapi import APIRouter, BackgroundTasks, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from shared.config.database import get_db
from shared.security.dependencies import verify_admin_api_key, verify_internal_api_key
from .events import publisher
from .schemas import OrderCreate, OrderListQuery, OrderResponse, OrderStatusUpdate, OrderUpdate, Pagination
from .service import OrderService

# THIS PROTECTS THE ENTIRE SERVICE
router = APIRouter(dependencies=[Depends(verify_internal_api_key)])
public_router = APIRouter()  # For any public endpoints (e.g. health check)

@public_router.get("/health")
async def health_check():
    return {"service": "order", "status": "running"}


def order_payload(order) -> dict:
    return OrderResponse.model_validate(order).model_dump(mode="json")


@router.post("/", status_code=status.HTTP_201_CREATED)
async def create_order(
    order: OrderCreate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db)
):
    created = await OrderService.create_order(db, order)
    # Search sync / notifications run after the response and never affect it
    background_tasks.add_task(publisher.publish, "order.created", created)
    return {"success": True, "data": order_payload(created)}

@router.get("/")
async def list_orders(query: Annotated[OrderListQuery, Query()], db: AsyncSession = Depends(get_db)):
    orders, pagination = await OrderService.list_orders(db, query)
    return {
        "success": True,
        "data": [order_payload(o) for o in orders],
        "pagination": Pagination(**pagination).model_dump(),
    }

@router.get("/{order_id}")
async def get_order(order_id: UUID, db: AsyncSession = Depends(get_db)):
    order = await OrderService.get_order(db, order_id)
    return {"success": True, "data": order_payload(order)}

@router.patch("/{order_id}/status")
async def update_order_status(
    order_id: UUID,
    update: OrderStatusUpdate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db)
):
    order = await OrderService.update_order_status(db, order_id, update)
    background_tasks.add_task(publisher.publish, "order.status_changed", order)
    return {"success": True, "data": order_payload(order)}

@router.patch("/{order_id}")
async def update_order(
    order_id: UUID,
    update: OrderUpdate,
    background_tasks: BackgroundTasks,
    db: AsyncSession = Depends(get_db)
):
    order = await OrderService.update_order(db, order_id, update)
    background_tasks.add_task(publisher.publish, "order.updated", order)
    return {"success": True, "data": order_payload(order)}

# Hard delete is admin-only on top of the internal key
@router.delete("/{order_id}", dependencies=[Depends(verify_admin_api_key)])
async def delete_order(order_id: UUID, db: AsyncSession = Depends(get_db)):
    await OrderService.delete_order(db, order_id)
    return {"success": True, "data": {"message": "Order deleted successfully"}}
