"""Public-facing routes (APP_ROLE=public)."""

from fastapi import APIRouter

from staybook.api.routes import (
    bookings,
    calendar,
    checkout,
    quotes,
    settings,
    wallets,
    webhooks_razorpay,
    webhooks_stripe,
)

router = APIRouter()


@router.get("/health")
def health() -> dict:
    """Health check endpoint."""
    return {"status": "ok"}


router.include_router(webhooks_stripe.router)
router.include_router(webhooks_razorpay.router)
router.include_router(calendar.router)
router.include_router(quotes.router)
router.include_router(checkout.router)
router.include_router(bookings.router)
router.include_router(wallets.router)
router.include_router(settings.router)
