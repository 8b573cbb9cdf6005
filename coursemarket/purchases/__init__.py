"""Purchase ledger and course access decision."""

from coursemarket.purchases.access import AccessPolicy, decide_access
from coursemarket.purchases.ledger import MarkPaidResult, PurchaseLedger
from coursemarket.purchases.models import Purchase, PurchaseStatus


__all__ = [
    "AccessPolicy",
    "MarkPaidResult",
    "Purchase",
    "PurchaseLedger",
    "PurchaseStatus",
    "decide_access",
]
