"""HTTP endpoints for purchases.

Provides:
- GET /v1/purchases/my - List the caller's purchases
"""

from fastapi import APIRouter

from coursemarket.auth.dependencies import CurrentUser

from .dependencies import LedgerDep
from .schemas import PurchaseListResponse, PurchaseResponse


router = APIRouter(prefix="/v1/purchases", tags=["purchases"])


@router.get(
    "/my",
    response_model=PurchaseListResponse,
    summary="List my purchases",
)
async def list_my_purchases(
    ledger: LedgerDep,
    current_user: CurrentUser,
) -> PurchaseListResponse:
    """List every purchase of the current user, any status."""
    purchases = await ledger.list_for_user(current_user.id)
    purchases.sort(key=lambda p: p.created_at, reverse=True)
    return PurchaseListResponse(
        items=[PurchaseResponse.from_purchase(p) for p in purchases],
        total=len(purchases),
    )
