from fastapi import FastAPI
from shared.config.database import engine, Base

# IMPORTANT: import models so they register with Base
from services.customer_service import models as customer_models  # noqa: F401
from services.product_service import models as product_models  # noqa: F401
from services.order_service import models as order_models  # noqa: F401

from services.product_service.main import product_app
from services.order_service.main import order_app

app = FastAPI(title="Back-office Cluster")

@app.on_event("startup")
async def startup_event():
    async with engine.begin() as conn:
        # Create all tables
        await conn.run_sync(Base.metadata.create_all)

app.mount("/products", product_app)
app.mount("/orders", order_app)
