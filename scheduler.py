from apscheduler.schedulers.background import BackgroundScheduler
from flask import current_app

from models import AccountType
from utils.maintenance import cleanup_abandoned_enrollments, reconcile_all_subscriptions


def cleanup_job(app):
    with app.app_context():
        for account_type in (AccountType.DUGSI, AccountType.MAHAD):
            try:
                cleanup_abandoned_enrollments(account_type)
            except Exception:
                current_app.logger.exception("Abandoned enrollment cleanup failed for %s", account_type)


def reconcile_job(app):
    with app.app_context():
        try:
            result = reconcile_all_subscriptions()
            current_app.logger.info(
                "Subscription reconciliation: %d synced, %d errors", result["synced"], len(result["errors"]),
            )
        except Exception:
            current_app.logger.exception("Subscription reconciliation failed")


def start_scheduler(app):
    scheduler = BackgroundScheduler()
    cleanup_hours = int(app.config.get('CLEANUP_INTERVAL_HOURS', 24))
    reconcile_hours = int(app.config.get('RECONCILE_INTERVAL_HOURS', 24))
    scheduler.add_job(lambda: cleanup_job(app), 'interval', hours=cleanup_hours,
                      id='cleanup_abandoned_enrollments', replace_existing=True)
    scheduler.add_job(lambda: reconcile_job(app), 'interval', hours=reconcile_hours,
                      id='reconcile_subscriptions', replace_existing=True)
    scheduler.start()
    app.logger.info("Background scheduler started (cleanup every %sh, reconcile every %sh)",
                    cleanup_hours, reconcile_hours)
    return scheduler
