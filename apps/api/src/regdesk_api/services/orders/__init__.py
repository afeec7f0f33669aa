"""Order ledger services: sealing, verification and admin corrections."""

from .admin_patch import OrderAdminPatchService, OrderPatchResult, OrderPatchValidationError
from .integrity import (
    OrderHashVerification,
    attach_immutable_order_hash,
    compute_order_hash,
    patch_order_court_fields,
    rehash_order_after_admin_patch,
    stable_stringify,
    verify_order_hash,
)
from .repository import OrderCache, OrderNotFoundError, OrderRepository

__all__ = [
    "OrderAdminPatchService",
    "OrderCache",
    "OrderHashVerification",
    "OrderNotFoundError",
    "OrderPatchResult",
    "OrderPatchValidationError",
    "OrderRepository",
    "attach_immutable_order_hash",
    "compute_order_hash",
    "patch_order_court_fields",
    "rehash_order_after_admin_patch",
    "stable_stringify",
    "verify_order_hash",
]
