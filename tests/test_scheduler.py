from unittest.mock import patch

from models import AccountType
from scheduler import cleanup_job, reconcile_job, start_scheduler


def test_cleanup_job_runs_both_programs_and_survives_errors(app):
    with patch("scheduler.cleanup_abandoned_enrollments", side_effect=[RuntimeError("stripe down"), {}]) as cleanup:
        cleanup_job(app)
    assert [c.args[0] for c in cleanup.call_args_list] == [AccountType.DUGSI, AccountType.MAHAD]


def test_reconcile_job_logs_failures(app):
    with patch("scheduler.reconcile_all_subscriptions", side_effect=RuntimeError("db gone")) as reconcile:
        reconcile_job(app)
    reconcile.assert_called_once_with()


def test_start_scheduler_registers_jobs(app):
    with patch("scheduler.BackgroundScheduler") as scheduler_cls:
        scheduler = start_scheduler(app)
    job_ids = [c.kwargs["id"] for c in scheduler.add_job.call_args_list]
    assert job_ids == ["cleanup_abandoned_enrollments", "reconcile_subscriptions"]
    scheduler.start.assert_called_once_with()
    assert scheduler is scheduler_cls.return_value
