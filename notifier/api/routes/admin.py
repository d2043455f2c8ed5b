"""Administrative operations: retries, resends, scheduling, maintenance, health."""

from fastapi import APIRouter, Depends, Query

from notifier.container import Services
from notifier.status import job_dict

from ..dependencies import get_services
from ..schemas import ScheduleRequest

router = APIRouter(tags=["admin"])


@router.post("/api/admin/jobs/{job_id}/retry")
def retry_job(job_id: str, services: Services = Depends(get_services)):
    job = services.scheduler.retry_job(job_id)
    return {"success": True, "job": job_dict(job)}


@router.post("/api/admin/jobs/{job_id}/resend")
def resend_job(job_id: str, services: Services = Depends(get_services)):
    job = services.scheduler.resend_job(job_id)
    return {"success": True, "originalJobId": job_id, "job": job_dict(job)}


@router.post("/api/admin/messages/{message_id}/cancel")
def cancel_message(message_id: str, services: Services = Depends(get_services)):
    services.scheduler.cancel_message(message_id)
    return {"success": True, "messageId": message_id, "cancelled": True}


@router.post("/api/sessions/{session_id}/retry-failed")
def retry_failed_for_session(session_id: str, services: Services = Depends(get_services)):
    report = services.scheduler.retry_failed_for_session(session_id)
    return {"success": report.failed == 0, "sessionId": session_id, **report.as_dict()}


@router.post("/api/admin/schedule")
def schedule_events(body: ScheduleRequest, services: Services = Depends(get_services)):
    result = services.bulk_scheduler.schedule_events(
        event_ids=body.event_ids,
        events=body.events,
        force=body.force,
        dry_run=body.dry_run,
        created_by=body.created_by,
    )
    return result.as_dict()


@router.post("/api/admin/maintenance/recalculate")
def recalculate(services: Services = Depends(get_services)):
    result = services.maintenance.recalculate()
    return {"success": not result.errors, **result.as_dict(), "changedBatchIds": result.changed}


@router.post("/api/admin/maintenance/reconcile")
def reconcile(services: Services = Depends(get_services)):
    result = services.maintenance.reconcile()
    return {"success": result.failed == 0, **result.as_dict()}


@router.get("/api/admin/health")
def health(
    recalculate: bool = False,
    test_publish: bool = Query(False, alias="testPublish"),
    services: Services = Depends(get_services),
):
    env = services.env_config
    queue = services.app_config.queue
    scheduler = services.scheduler
    flow = queue.flow_control

    report = {
        "success": True,
        "config": {
            "queueTokenConfigured": services.queue_client.configured,
            "currentSigningKeyConfigured": bool(env.current_signing_key),
            "nextSigningKeyConfigured": bool(env.next_signing_key),
            "strictSignatures": env.strict_signatures,
            "appBaseUrl": env.app_base_url,
            "environment": env.environment,
        },
        "flowControl": {
            "key": flow.key,
            "rate": flow.rate,
            "parallelism": flow.parallelism,
            "period": flow.period,
        },
        "retryConfig": {"retries": queue.retries, "retryDelay": queue.retry_delay},
        "endpoints": {
            "worker": scheduler.worker_url,
            "callback": scheduler.callback_url,
            "failure": scheduler.failure_url,
        },
        "database": services.database.is_available(),
    }

    if recalculate:
        report["recalculation"] = services.maintenance.recalculate().as_dict()

    report["stats"] = services.status.stats()

    if test_publish:
        probe = scheduler.probe()
        report["testPublish"] = probe
        report["success"] = bool(probe["success"])

    if not report["database"]:
        report["success"] = False
    return report
