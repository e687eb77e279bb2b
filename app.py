# app.py
from __future__ import annotations
import logging
from pathlib import Path
from typing import Optional

from core.actor import ActorProvider
from core.batching import BatchRunner
from core.clock import Clock
from core.db import get_engine, init_db
from core.logs import configure_logging
from core.notifications import NotificationDispatcher, Notifier
from core.settings import Settings, load_settings
from services.api import AcademicRecordsAPI
from services.audit.log import AuditLog
from services.audit.review import AuditReviewService
from services.discipline.workflow import DisciplinaryCaseWorkflow
from services.grading.changes import GradeChangeService
from services.grading.engine import SummaryGradeService
from services.grading.store import GradeStore
from services.roster.repository import RosterRepository
from services.submissions.workflow import SubmissionWorkflow
from services.sync.service import ReportSyncService
from services.violations.reports import ViolationService

log = logging.getLogger(__name__)


def build_app(
    current_actor: ActorProvider,
    settings_path: Optional[str | Path] = None,
    settings: Optional[Settings] = None,
    notifier: Optional[Notifier] = None,
    clock: Optional[Clock] = None,
) -> AcademicRecordsAPI:
    """
    Wire the workflow engine.

    `current_actor` is the host's pre-authenticated caller; the engine
    trusts whatever it returns. `notifier` is the delivery transport
    (defaults to one that only logs).
    """
    # 1. Settings and logging
    if settings is None:
        settings = load_settings(settings_path) if settings_path else load_settings()
    configure_logging(settings.logging)

    # 2. Engine and schemas (installers are idempotent)
    engine = get_engine(settings.db.url)
    init_db(engine)

    # 3. Shared collaborators
    roster = RosterRepository()
    store = GradeStore()
    audit = AuditLog()
    dispatcher = NotificationDispatcher(
        notifier=notifier,
        workers=settings.notifications.workers,
        enabled=settings.notifications.enabled,
    )
    runner = BatchRunner(
        batch_size=settings.workflow.batch_size,
        max_workers=settings.workflow.max_workers,
        pause_seconds=settings.workflow.batch_pause_seconds,
    )

    # 4. Services
    summaries = SummaryGradeService(
        engine, store=store, roster=roster, clock=clock,
        display_decimals=settings.grading.display_decimals,
        cache_summaries=settings.grading.cache_summaries,
    )
    api = AcademicRecordsAPI(
        current_actor=current_actor,
        summaries=summaries,
        changes=GradeChangeService(engine, store=store, audit=audit, roster=roster, clock=clock),
        reviews=AuditReviewService(engine, store=store, audit=audit, clock=clock),
        submissions=SubmissionWorkflow(engine, summaries, dispatcher, runner=runner, roster=roster, clock=clock),
        violations=ViolationService(engine, roster=roster, clock=clock),
        sync=ReportSyncService(engine, summaries, grades=store, roster=roster, clock=clock),
        cases=DisciplinaryCaseWorkflow(engine, dispatcher, roster=roster, clock=clock),
        engine=engine,
        dispatcher=dispatcher,
    )

    log.info("%s ready (%s, db=%s)", settings.app.name, settings.app.environment, engine.url)
    return api
