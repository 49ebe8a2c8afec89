from fastapi import APIRouter

from app.api.v1.endpoints import (
    # Billing
    bills,
    # Invoice Counter Administration
    admin,
)

api_router = APIRouter(prefix="/api/v1")

# ==================== Billing ====================
api_router.include_router(
    bills.router,
    prefix="/bills",
    tags=["Bills"]
)

# ==================== Administration ====================
api_router.include_router(
    admin.router,
    prefix="/admin",
    tags=["Admin"]
)
