"""Queue webhooks. Only a bad signature produces a non-2xx response."""

from fastapi import APIRouter, Depends, Request
from starlette.concurrency import run_in_threadpool

from notifier.container import Services
from notifier.queue import SIGNATURE_HEADER

from ..dependencies import get_services

router = APIRouter(prefix="/api/queue", tags=["webhooks"])


@router.post("/callback")
async def queue_callback(request: Request, services: Services = Depends(get_services)):
    body = await request.body()
    return await run_in_threadpool(
        services.callback_handler.handle, body, request.headers.get(SIGNATURE_HEADER)
    )


@router.post("/failure")
async def queue_failure(request: Request, services: Services = Depends(get_services)):
    body = await request.body()
    return await run_in_threadpool(
        services.failure_handler.handle, body, request.headers.get(SIGNATURE_HEADER)
    )
