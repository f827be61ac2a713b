from fastapi import APIRouter

from app.api.v1.endpoints import health, listings, stripe

router = APIRouter()
router.include_router(health.router)
router.include_router(stripe.router)
router.include_router(listings.router)
