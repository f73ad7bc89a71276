# lablink/tasks/scheduler.py
from __future__ import annotations

import atexit
import os

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger


def start_scheduler(app):
    """
    - Outbox relay ve gecikme hatırlatma job'larını çalıştırır.
    - Debug reloader'da çift çalışmayı engeller.
    - Süreç kapanırken scheduler'ı kapatır.
    """
    if not app.config.get("SCHEDULER_ENABLED"):
        app.logger.info("[scheduler] disabled by config.")
        return None

    # Debug reloader çift process çalıştırır; sadece "asıl" process'te başlat
    if app.debug and os.environ.get("WERKZEUG_RUN_MAIN") != "true":
        app.logger.info("[scheduler] Debug reloader secondary process: scheduler skipped.")
        return None

    # Job fonksiyonlarını burada import etmek circular import riskini azaltır
    from lablink.tasks.outbox_relay import run_outbox_relay_job
    from lablink.tasks.overdue_check import run_overdue_check_job

    scheduler = BackgroundScheduler(timezone="UTC")

    scheduler.add_job(
        func=run_outbox_relay_job,
        args=[app],
        trigger=IntervalTrigger(minutes=app.config.get("OUTBOX_RELAY_MINUTES", 2)),
        id="outbox_relay_job",
        replace_existing=True,
        max_instances=1,        # aynı job üst üste binmesin
        coalesce=True,          # kaçırılanları tek seferde toparla
        misfire_grace_time=120
    )
    scheduler.add_job(
        func=run_overdue_check_job,
        args=[app],
        trigger=IntervalTrigger(hours=1),
        id="overdue_check_job",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
        misfire_grace_time=600
    )

    try:
        scheduler.start()
    except Exception as e:
        # scheduler olmadan da API çalışır; relay /notifications/dispatch ile tetiklenebilir
        app.logger.warning(f"[scheduler] Scheduler başlatılamadı: {e}")
        return None

    app.logger.info("[scheduler] outbox relay + overdue check jobs started.")
    app.extensions["apscheduler"] = scheduler

    def _shutdown():
        if scheduler.running:
            scheduler.shutdown(wait=False)
            app.logger.info("[scheduler] Scheduler shutdown.")

    atexit.register(_shutdown)
    return scheduler
