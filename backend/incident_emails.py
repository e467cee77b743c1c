"""Background poller delivering pending incident notification emails."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from threading import Event, Lock, Thread
from typing import Dict, Mapping, Optional

from backend.app.services.incident_notifications import (
    IncidentDispatchSummary,
    process_pending_notifications,
)
from backend.mail.config import to_bool, to_float, to_int

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class IncidentEmailConfig:
    enabled: bool
    interval_seconds: float
    error_backoff_seconds: float
    batch_size: int


def load_incident_email_config(env: Optional[Mapping[str, str]] = None) -> IncidentEmailConfig:
    env_mapping = os.environ if env is None else env
    return IncidentEmailConfig(
        enabled=to_bool(env_mapping.get("INCIDENT_EMAIL_ENABLED"), default=True),
        interval_seconds=max(1.0, to_float(env_mapping.get("INCIDENT_EMAIL_INTERVAL_SECONDS"), default=60.0)),
        error_backoff_seconds=max(
            1.0, to_float(env_mapping.get("INCIDENT_EMAIL_ERROR_BACKOFF_SECONDS"), default=300.0)
        ),
        batch_size=max(1, to_int(env_mapping.get("INCIDENT_EMAIL_BATCH_SIZE"), default=50)),
    )


_scheduler_lock = Lock()
_worker: Optional["_IncidentEmailWorker"] = None


def _empty_metrics() -> Dict[str, object]:
    return {
        "runs": 0,
        "sent": 0,
        "failed": 0,
        "unrecorded": 0,
        "errors": 0,
        "last_run_at": None,
        "last_success_at": None,
        "last_error": None,
    }


_METRICS: Dict[str, object] = _empty_metrics()
_metrics_lock = Lock()


def _record_run_start(started_at: datetime) -> None:
    with _metrics_lock:
        _METRICS["runs"] = int(_METRICS["runs"]) + 1
        _METRICS["last_run_at"] = started_at


def _record_run_success(completed_at: datetime, summary: IncidentDispatchSummary) -> None:
    with _metrics_lock:
        _METRICS["sent"] = int(_METRICS["sent"]) + summary.sent
        _METRICS["failed"] = int(_METRICS["failed"]) + summary.failed
        _METRICS["unrecorded"] = int(_METRICS["unrecorded"]) + summary.unrecorded
        _METRICS["last_success_at"] = completed_at
        _METRICS["last_error"] = None


def _record_run_failure(error: Exception) -> None:
    with _metrics_lock:
        _METRICS["errors"] = int(_METRICS["errors"]) + 1
        _METRICS["last_error"] = f"{type(error).__name__}: {error}"


def run_incident_email_job(
    *,
    now: Optional[datetime] = None,
    batch_size: int = 50,
) -> IncidentDispatchSummary:
    current_time = now or datetime.now(timezone.utc)
    if current_time.tzinfo is None:
        current_time = current_time.replace(tzinfo=timezone.utc)

    _record_run_start(current_time)
    try:
        summary = process_pending_notifications(now=current_time, batch_size=batch_size)
    except Exception as exc:
        _record_run_failure(exc)
        logger.exception("Incident email job failed")
        raise
    _record_run_success(current_time, summary)
    if summary.processed:
        logger.info(
            "Incident email job completed",
            extra={"sent": summary.sent, "failed": summary.failed, "unrecorded": summary.unrecorded},
        )
    return summary


class _IncidentEmailWorker(Thread):
    def __init__(self, *, interval: float, error_backoff: float, batch_size: int):
        super().__init__(daemon=True, name="incident-email-worker")
        self._interval = max(1.0, interval)
        self._error_backoff = max(1.0, error_backoff)
        self._batch_size = batch_size
        self._stop_event = Event()

    def stop(self) -> None:
        self._stop_event.set()

    def next_delay(self, *, failed: bool) -> float:
        return self._error_backoff if failed else self._interval

    def run(self) -> None:  # pragma: no cover - thread execution
        logger.info("Incident email worker started")
        while not self._stop_event.is_set():
            failed = False
            try:
                run_incident_email_job(batch_size=self._batch_size)
            except Exception:
                # Logged inside run_incident_email_job; back off before the next poll.
                failed = True
            if self._stop_event.wait(self.next_delay(failed=failed)):
                break
        logger.info("Incident email worker stopped")


def start_incident_email_scheduler(config: Optional[IncidentEmailConfig] = None) -> bool:
    """Start the single per-process worker. Returns ``False`` when disabled or already running."""

    global _worker
    settings = config or load_incident_email_config()
    if not settings.enabled:
        logger.info("Incident email scheduler disabled")
        return False
    with _scheduler_lock:
        if _worker is not None:
            return False
        _worker = _IncidentEmailWorker(
            interval=settings.interval_seconds,
            error_backoff=settings.error_backoff_seconds,
            batch_size=settings.batch_size,
        )
        _worker.start()
        logger.info(
            "Incident email scheduler started",
            extra={
                "interval_seconds": settings.interval_seconds,
                "error_backoff_seconds": settings.error_backoff_seconds,
                "batch_size": settings.batch_size,
            },
        )
        return True


def shutdown_incident_email_scheduler() -> None:
    global _worker
    with _scheduler_lock:
        worker = _worker
        _worker = None
        if worker is None:
            return
        worker.stop()
        worker.join(timeout=1.0)
        logger.info("Incident email scheduler stopped")


def get_incident_email_metrics() -> Dict[str, object]:
    with _metrics_lock:
        return {
            **_METRICS,
            "last_run_at": _METRICS["last_run_at"].isoformat() if _METRICS.get("last_run_at") else None,
            "last_success_at": _METRICS["last_success_at"].isoformat() if _METRICS.get("last_success_at") else None,
        }


def _reset_metrics_for_testing() -> None:
    with _metrics_lock:
        _METRICS.update(_empty_metrics())


__all__ = [
    "IncidentEmailConfig",
    "get_incident_email_metrics",
    "load_incident_email_config",
    "run_incident_email_job",
    "shutdown_incident_email_scheduler",
    "start_incident_email_scheduler",
]
