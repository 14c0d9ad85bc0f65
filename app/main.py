import asyncio
import contextlib
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

# Import routes
from routes import users, locations, table_management, order_management, coupons, customer_data, notifications

# Import database and models
import models  # noqa: F401
from utils.config import CORS_ORIGINS, LOG_LEVEL, RESERVATION_SWEEP_ENABLED, RESERVATION_SWEEP_INTERVAL_SECONDS
from utils.database import engine, Base

logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Create database tables
    Base.metadata.create_all(bind=engine)

    sweeper = None
    if RESERVATION_SWEEP_ENABLED:
        sweeper = asyncio.create_task(table_management.reservation_sweeper(RESERVATION_SWEEP_INTERVAL_SECONDS))
    try:
        yield
    finally:
        if sweeper is not None:
            sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await sweeper
            logger.info("Reservation sweeper stopped")


# Create FastAPI app
app = FastAPI(
    title="Restaurant POS API",
    description="Order lifecycle, coupons and table management for restaurant point of sale",
    version="1.0.0",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "users", "description": "User management and login"},
        {"name": "locations", "description": "Franchises, locations and billing settings"},
        {"name": "table_management", "description": "Tables, reservations, merges and switches"},
        {"name": "orders", "description": "Order lifecycle from temporary to settled"},
        {"name": "coupons", "description": "Regular and dish coupons"},
        {"name": "customer-data", "description": "Customer userbase and CSV export"},
    ],
    swagger_ui_parameters={
        "persistAuthorization": True,
        "defaultModelsExpandDepth": -1
    }
)


# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include routers
app.include_router(users.router)
app.include_router(locations.router)
app.include_router(table_management.router)
app.include_router(order_management.router)
app.include_router(coupons.router)
app.include_router(customer_data.router)
app.include_router(notifications.router)

# Root endpoint
@app.get("/")
async def root():
    return {"message": "Welcome to the Restaurant POS API"}

# Main run block
if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app.main:app", host="0.0.0.0", port=8000, reload=True)
