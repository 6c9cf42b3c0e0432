# routers/admin.py

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from core.errors import AccountNotFound
from core.logging_config import logger
from core.notifications import notify_approved, notify_rejected
from dependencies.auth import CurrentUser, requires_role
from dependencies.services import get_lifecycle
from models.account import Account, AccountRead, RejectRequest
from models.authorized_member import AuthorizationSlot
from models.enums import AccountStatus
from services.lifecycle import AccountLifecycle


router = APIRouter(
    prefix="/admin",
    tags=["Admin"],
)

require_admin = requires_role(["admin"])

SLOT_STATUS_FILTERS = ("all", "used", "unused")


# -----------------------------------------------------
# Helpers: search + pagination (in memory, like the review UI expects)
# -----------------------------------------------------
def _contains(needle: str, *values: Any) -> bool:
    return any(needle in str(v).lower() for v in values if v not in (None, ""))


def paginate(items: List[Any], page: int, limit: int) -> Dict[str, Any]:
    total = len(items)
    start = (page - 1) * limit
    return {
        "items": items[start:start + limit],
        "pagination": {
            "total": total,
            "page": page,
            "pages": -(-total // limit),
            "limit": limit,
        },
    }


def _account_summary(account: Optional[Account]) -> Optional[Dict[str, Any]]:
    if account is None:
        return None
    return {"id": account.id, "name": account.name, "email": account.email}


# -----------------------------------------------------
# GET /admin/pending-users
# Pending review queue with registry match details
# -----------------------------------------------------
@router.get("/pending-users", summary="Admin: List accounts pending approval")
def list_pending_users(
    search: str = "",
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    current_user: CurrentUser = Depends(require_admin),
    lifecycle: AccountLifecycle = Depends(get_lifecycle),
):
    accounts = lifecycle.list_by_status(AccountStatus.pending)

    needle = search.strip().lower()
    if needle:
        accounts = [
            a for a in accounts
            if _contains(needle, a.name, a.email, a.member_id, a.phone)
        ]

    result = paginate(accounts, page, limit)
    data = [
        {
            **AccountRead.from_account(a).model_dump(mode="json"),
            **lifecycle.registry_match(a),
        }
        for a in result["items"]
    ]

    return {"success": True, "data": data, "pagination": result["pagination"]}


# -----------------------------------------------------
# GET /admin/pending-users/count
# -----------------------------------------------------
@router.get("/pending-users/count", summary="Admin: Count accounts pending approval")
def count_pending_users(
    current_user: CurrentUser = Depends(require_admin),
    lifecycle: AccountLifecycle = Depends(get_lifecycle),
):
    return {"success": True, "count": lifecycle.count_by_status(AccountStatus.pending)}


# -----------------------------------------------------
# POST /admin/pending-users/{account_id}/approve
# -----------------------------------------------------
@router.post("/pending-users/{account_id}/approve", summary="Admin: Approve account")
def approve_user(
    account_id: str,
    current_user: CurrentUser = Depends(require_admin),
    lifecycle: AccountLifecycle = Depends(get_lifecycle),
):
    account = lifecycle.approve(account_id, admin_id=current_user.id)
    notify_approved(account)

    return {
        "success": True,
        "message": "User approved successfully",
        "data": AccountRead.from_account(account),
    }


# -----------------------------------------------------
# POST /admin/pending-users/{account_id}/reject
# -----------------------------------------------------
@router.post("/pending-users/{account_id}/reject", summary="Admin: Reject account")
def reject_user(
    account_id: str,
    payload: Optional[RejectRequest] = None,
    current_user: CurrentUser = Depends(require_admin),
    lifecycle: AccountLifecycle = Depends(get_lifecycle),
):
    reason = payload.reason if payload else None
    account = lifecycle.reject(account_id, admin_id=current_user.id, reason=reason)
    notify_rejected(account)

    return {
        "success": True,
        "message": "User rejected",
        "data": AccountRead.from_account(account),
    }


# -----------------------------------------------------
# GET /admin/authorized-members
# Registry listing with usage stats and claimant summary
# -----------------------------------------------------
@router.get("/authorized-members", summary="Admin: List authorized members")
def list_authorized_members(
    status: str = "all",
    search: str = "",
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    current_user: CurrentUser = Depends(require_admin),
    lifecycle: AccountLifecycle = Depends(get_lifecycle),
):
    if status not in SLOT_STATUS_FILTERS:
        raise HTTPException(400, f"Invalid status filter: {status}")

    slots = lifecycle.registry.list_slots()
    slots.sort(key=lambda s: s.imported_at.timestamp() if s.imported_at else 0, reverse=True)

    used_count = sum(1 for s in slots if s.used)
    stats = {"total": len(slots), "used": used_count, "unused": len(slots) - used_count}

    if status == "used":
        slots = [s for s in slots if s.used]
    elif status == "unused":
        slots = [s for s in slots if not s.used]

    needle = search.strip().lower()
    if needle:
        slots = [
            s for s in slots
            if _contains(needle, s.canonical_member_id, s.canonical_phone, s.name, s.email)
        ]

    result = paginate(slots, page, limit)
    data = [_slot_row(s, lifecycle) for s in result["items"]]

    logger.info(f"Admin {current_user.id} listed authorized members (status={status}, search={needle!r})")
    return {
        "success": True,
        "data": data,
        "pagination": result["pagination"],
        "stats": stats,
    }


def _slot_row(slot: AuthorizationSlot, lifecycle: AccountLifecycle) -> Dict[str, Any]:
    claimant = None
    if slot.used_by:
        try:
            claimant = _account_summary(lifecycle.get_account(slot.used_by))
        except AccountNotFound:
            # Stale claim; cleared by the next signup that reaches this slot
            claimant = None

    return {
        **slot.summary(),
        "email": slot.email,
        "notes": slot.notes,
        "is_used": slot.used,
        "used_by": slot.used_by,
        "used_at": slot.used_at,
        "imported_at": slot.imported_at,
        "used_by_user": claimant,
    }
