from uuid import UUID
from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from shared.config.database import get_db
from shared.security.dependencies import verify_admin_api_key, verify_internal_api_key
from .schemas import ProductResponse, StockAdjustment, StockAdjustmentResponse
from .service import ProductService

router = APIRouter(dependencies=[Depends(verify_internal_api_key)])
public_router = APIRouter()  # For any public endpoints (e.g. health check)

@public_router.get("/health")
async def health_check():
    return {"service": "product", "status": "running"}


@router.get("/{product_id}")
async def get_product(product_id: UUID, db: AsyncSession = Depends(get_db)):
    product = await ProductService.get_product_by_id(db, product_id)
    return {"success": True, "data": ProductResponse.model_validate(product).model_dump(mode="json")}


# Manual stock correction is admin-only on top of the internal key
@router.post("/{product_id}/stock", dependencies=[Depends(verify_admin_api_key)])
async def adjust_stock(
    product_id: UUID,
    adjustment: StockAdjustment,
    db: AsyncSession = Depends(get_db)
):
    """Manual stock correction. Order placement never goes through here."""
    result = await ProductService.adjust_stock(db, product_id, adjustment)
    payload = StockAdjustmentResponse.model_validate(
        {**result, "product": ProductResponse.model_validate(result["product"])}
    )
    return {"success": True, "data": payload.model_dump(mode="json", by_alias=True)}
