import datetime
import uuid
from typing import List, Optional

import sqlalchemy as sa
import sqlalchemy.exc as sa_exception
from sqlalchemy.orm import Mapped, mapped_column

from mili_llama.sql_orm.connection.base import Base
from mili_llama.sql_orm.connection.sqlalchemy_pg import get_session, initialize_global_engine
from mili_llama.utils.logging_config import get_workflow_logger

logger = get_workflow_logger()


class WorkflowStep:
    STARTED = "started"
    WRITE_RECORD = "write_record"
    UPLOAD = "upload"
    FETCH_URL = "fetch_url"
    PATCH_RECORD = "patch_record"


class RunStatus:
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    # set by the reconciliation sweep
    CLEANED = "cleaned"
    ABANDONED = "abandoned"


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class WorkflowRunOrm(Base):
    __tablename__ = "workflow_runs"

    run_id: Mapped[str] = mapped_column(sa.String(64), primary_key=True)
    collection_path: Mapped[str] = mapped_column(sa.String(512))
    attachment_field: Mapped[Optional[str]] = mapped_column(sa.String(128), nullable=True)
    record_id: Mapped[Optional[str]] = mapped_column(sa.String(255), nullable=True)
    storage_path: Mapped[Optional[str]] = mapped_column(sa.String(1024), nullable=True)
    attachment_url: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    # last step that completed
    step: Mapped[str] = mapped_column(sa.String(32), default=WorkflowStep.STARTED)
    status: Mapped[str] = mapped_column(sa.String(32), default=RunStatus.RUNNING)
    error: Mapped[Optional[str]] = mapped_column(sa.Text, nullable=True)
    started_at: Mapped[datetime.datetime] = mapped_column(sa.DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime.datetime] = mapped_column(sa.DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        sa.Index('idx_workflow_runs_status', 'status'),
    )


def setup_journal(url: str) -> None:
    """Connect the journal to its database, creating the table when missing."""
    initialize_global_engine(url)


class WorkflowJournal:
    """
    Local record of every create-then-attach run.

    Only failed runs matter afterwards: the reconciliation sweep reads them to
    find records and files left behind by a partial failure.
    """

    def start_run(self, collection_path: str, attachment_field: Optional[str]) -> str:
        run = WorkflowRunOrm(
            run_id=str(uuid.uuid4()),
            collection_path=collection_path,
            attachment_field=attachment_field,
            step=WorkflowStep.STARTED,
            status=RunStatus.RUNNING,
        )
        session = get_session()
        try:
            session.add(run)
            session.commit()
            return run.run_id
        except sa_exception.SQLAlchemyError as e:
            session.rollback()
            logger.error(f"JOURNAL_START | Path: {collection_path} | Error: {e}")
            raise
        finally:
            session.close()

    def _update(self, run_id: str, **values) -> None:
        values["updated_at"] = _utcnow()
        session = get_session()
        try:
            session.query(WorkflowRunOrm).filter(
                WorkflowRunOrm.run_id == run_id
            ).update(values)
            session.commit()
        except sa_exception.SQLAlchemyError as e:
            session.rollback()
            logger.error(f"JOURNAL_UPDATE | Run: {run_id} | Error: {e}")
            raise
        finally:
            session.close()

    def mark_step(
        self,
        run_id: str,
        step: str,
        record_id: Optional[str] = None,
        storage_path: Optional[str] = None,
        attachment_url: Optional[str] = None,
    ) -> None:
        values = {"step": step}
        if record_id is not None:
            values["record_id"] = record_id
        if storage_path is not None:
            values["storage_path"] = storage_path
        if attachment_url is not None:
            values["attachment_url"] = attachment_url
        self._update(run_id, **values)

    def finish_run(self, run_id: str) -> None:
        self._update(run_id, status=RunStatus.SUCCEEDED)

    def fail_run(self, run_id: str, error: str) -> None:
        self._update(run_id, status=RunStatus.FAILED, error=error)

    def resolve_run(self, run_id: str, status: str) -> None:
        self._update(run_id, status=status)

    def get_run(self, run_id: str) -> Optional[WorkflowRunOrm]:
        session = get_session()
        try:
            return session.query(WorkflowRunOrm).filter(
                WorkflowRunOrm.run_id == run_id
            ).first()
        finally:
            session.close()

    def get_failed_runs(self) -> List[WorkflowRunOrm]:
        session = get_session()
        try:
            return session.query(WorkflowRunOrm).filter(
                WorkflowRunOrm.status == RunStatus.FAILED
            ).order_by(WorkflowRunOrm.started_at).all()
        finally:
            session.close()

    def get_runs_to_sweep(self, stale_before: datetime.datetime) -> List[WorkflowRunOrm]:
        """Failed runs, plus runs still marked running that stopped updating before stale_before."""
        session = get_session()
        try:
            return session.query(WorkflowRunOrm).filter(
                sa.or_(
                    WorkflowRunOrm.status == RunStatus.FAILED,
                    sa.and_(
                        WorkflowRunOrm.status == RunStatus.RUNNING,
                        WorkflowRunOrm.updated_at < stale_before,
                    ),
                )
            ).order_by(WorkflowRunOrm.started_at).all()
        finally:
            session.close()
