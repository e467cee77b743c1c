from datetime import datetime, timezone

import pytest

from backend import incident_emails
from backend.app.services.incident_notifications import IncidentDispatchSummary


@pytest.fixture(autouse=True)
def _reset_metrics():
    incident_emails._reset_metrics_for_testing()
    yield
    incident_emails.shutdown_incident_email_scheduler()
    incident_emails._reset_metrics_for_testing()


def test_run_job_updates_metrics(monkeypatch):
    summary = IncidentDispatchSummary(sent=3, failed=1, unrecorded=1)
    calls = []

    def fake_process(*, now=None, batch_size=50):
        calls.append((now, batch_size))
        return summary

    monkeypatch.setattr(incident_emails, "process_pending_notifications", fake_process)

    run_time = datetime(2024, 8, 1, 9, tzinfo=timezone.utc)
    result = incident_emails.run_incident_email_job(now=run_time, batch_size=25)

    assert result == summary
    assert calls == [(run_time, 25)]
    metrics = incident_emails.get_incident_email_metrics()
    assert metrics["runs"] == 1
    assert metrics["sent"] == 3
    assert metrics["failed"] == 1
    assert metrics["unrecorded"] == 1
    assert metrics["errors"] == 0
    assert metrics["last_run_at"] == run_time.isoformat()
    assert metrics["last_success_at"] == run_time.isoformat()
    assert metrics["last_error"] is None


def test_run_job_failure_is_recorded_and_reraised(monkeypatch):
    def failing_process(**kwargs):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(incident_emails, "process_pending_notifications", failing_process)

    with pytest.raises(RuntimeError):
        incident_emails.run_incident_email_job(now=datetime(2024, 8, 1, tzinfo=timezone.utc))

    metrics = incident_emails.get_incident_email_metrics()
    assert metrics["runs"] == 1
    assert metrics["errors"] == 1
    assert metrics["last_success_at"] is None
    assert metrics["last_error"] == "RuntimeError: database unavailable"


def test_metrics_accumulate_across_runs(monkeypatch):
    monkeypatch.setattr(
        incident_emails,
        "process_pending_notifications",
        lambda **kwargs: IncidentDispatchSummary(sent=2, failed=0),
    )

    incident_emails.run_incident_email_job()
    incident_emails.run_incident_email_job()

    metrics = incident_emails.get_incident_email_metrics()
    assert metrics["runs"] == 2
    assert metrics["sent"] == 4


def test_config_defaults_and_overrides():
    defaults = incident_emails.load_incident_email_config(env={})
    assert defaults.enabled is True
    assert defaults.interval_seconds == 60.0
    assert defaults.error_backoff_seconds == 300.0
    assert defaults.batch_size == 50

    custom = incident_emails.load_incident_email_config(
        env={
            "INCIDENT_EMAIL_ENABLED": "false",
            "INCIDENT_EMAIL_INTERVAL_SECONDS": "15",
            "INCIDENT_EMAIL_ERROR_BACKOFF_SECONDS": "120",
            "INCIDENT_EMAIL_BATCH_SIZE": "5",
        }
    )
    assert custom.enabled is False
    assert custom.interval_seconds == 15.0
    assert custom.error_backoff_seconds == 120.0
    assert custom.batch_size == 5


@pytest.mark.parametrize(
    "variable",
    ["INCIDENT_EMAIL_INTERVAL_SECONDS", "INCIDENT_EMAIL_ERROR_BACKOFF_SECONDS", "INCIDENT_EMAIL_BATCH_SIZE"],
)
def test_malformed_numeric_config_is_rejected(variable):
    with pytest.raises(ValueError):
        incident_emails.load_incident_email_config(env={variable: "soon"})


def test_unrecognised_enabled_flag_keeps_default():
    config = incident_emails.load_incident_email_config(env={"INCIDENT_EMAIL_ENABLED": "maybe"})
    assert config.enabled is True


def test_worker_backs_off_after_failures():
    worker = incident_emails._IncidentEmailWorker(interval=60, error_backoff=300, batch_size=50)
    assert worker.next_delay(failed=False) == 60
    assert worker.next_delay(failed=True) == 300


def test_disabled_scheduler_does_not_start():
    config = incident_emails.load_incident_email_config(env={"INCIDENT_EMAIL_ENABLED": "0"})
    assert incident_emails.start_incident_email_scheduler(config) is False


def test_scheduler_runs_single_worker(monkeypatch):
    monkeypatch.setattr(incident_emails, "run_incident_email_job", lambda **kwargs: IncidentDispatchSummary())
    config = incident_emails.load_incident_email_config(env={})

    assert incident_emails.start_incident_email_scheduler(config) is True
    assert incident_emails.start_incident_email_scheduler(config) is False

    incident_emails.shutdown_incident_email_scheduler()
    assert incident_emails.start_incident_email_scheduler(config) is True
