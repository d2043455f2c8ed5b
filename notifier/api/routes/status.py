"""Job status queries for the UI poller."""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse

from notifier.container import Services
from notifier.domain.exceptions import ValidationError
from notifier.status import DEFAULT_DEAD_LETTER_LIMIT

from ..dependencies import get_services

router = APIRouter(prefix="/api/jobs", tags=["status"])

FILTER_HINT = "Use sessionId, batchId, active=true, userId, or dlq=true"


@router.get("/status")
def get_status(
    batch_id: Optional[str] = Query(None, alias="batchId"),
    session_id: Optional[str] = Query(None, alias="sessionId"),
    user_id: Optional[str] = Query(None, alias="userId"),
    active: bool = False,
    active_only: bool = Query(True, alias="activeOnly"),
    details: bool = False,
    dlq: bool = False,
    limit: int = Query(DEFAULT_DEAD_LETTER_LIMIT, ge=1, le=1000),
    services: Services = Depends(get_services),
):
    status = services.status

    if dlq:
        entries = status.dead_letters(limit)
        return {"success": True, "deadLetterQueue": entries, "count": len(entries)}

    if batch_id:
        return {"success": True, "progress": status.batch_progress(batch_id, details=details)}

    if session_id:
        batches = status.session_batches(session_id)
        return {"success": True, "sessionId": session_id, "batches": batches, "count": len(batches)}

    if user_id:
        batches = status.user_batches(user_id, active_only=active_only)
        return {"success": True, "userId": user_id, "batches": batches, "count": len(batches)}

    if active:
        batches = status.active_batches()
        return {"success": True, "batches": batches, "count": len(batches)}

    return JSONResponse(
        status_code=400,
        content={"success": False, "error": "Missing required query parameter", "hint": FILTER_HINT},
    )


@router.delete("/status")
def delete_batch(
    batch_id: Optional[str] = Query(None, alias="batchId"),
    services: Services = Depends(get_services),
):
    if not batch_id:
        raise ValidationError("Missing batchId parameter")
    services.status.delete_batch(batch_id)
    return {"success": True, "message": f"Batch {batch_id} deleted"}
