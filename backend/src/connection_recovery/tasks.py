"""
Celery tasks for connection recovery.
"""
import logging

from celery import shared_task

from .integration import get_services

logger = logging.getLogger(__name__)


@shared_task(name="connection_recovery.attempt_connection_recovery", ignore_result=False)
def attempt_connection_recovery(principal_id, provider):
    result = get_services().executor.attempt_automatic_recovery(principal_id, provider)
    return result.to_dict()


@shared_task(name="connection_recovery.process_batch_refresh", ignore_result=False)
def process_batch_refresh(expiration_minutes=None, batch_size=None, dry_run=False):
    run = get_services().batch.process_batch_refresh(
        expiration_minutes=expiration_minutes,
        batch_size=batch_size,
        dry_run=dry_run,
    )
    return run.to_dict()


@shared_task(name="connection_recovery.process_batch_health_validation", ignore_result=False)
def process_batch_health_validation(principal_ids, provider, batch_size=None):
    return get_services().batch.process_batch_health_validation(principal_ids, provider, batch_size)


@shared_task(name="connection_recovery.retry_pending_upload")
def retry_pending_upload(upload_id, principal_id, provider):
    """Run one requeued upload and feed its outcome into error tracking.

    The attempt is counted on the upload before the handler runs, and a
    failure is stored on it, so an upload that keeps failing drops out of
    later requeue passes once it reaches its retry limit.
    """
    services = get_services()
    if services.upload_handler is None:
        logger.warning(f"No upload handler configured, upload {upload_id} left pending")
        return False

    if services.work_store is not None:
        services.work_store.record_recovery_attempt(upload_id)

    try:
        services.upload_handler(upload_id, principal_id, provider)
    except Exception as exc:
        error_kind = services.classifier.classify(exc, provider)
        if services.work_store is not None:
            try:
                services.work_store.record_failure(upload_id, error_kind, str(exc))
            except Exception as store_exc:
                logger.error(f"Failed to record failure for upload {upload_id}: {store_exc}")
        services.tracker.track_error(
            provider,
            principal_id,
            error_kind,
            "upload",
            str(exc),
            exception=exc,
            context={"upload_id": upload_id},
        )
        raise

    services.tracker.track_success(provider, principal_id, "upload")
    return True
