"""
Job Store

Persistent render jobs behind a small interface, with one SQLAlchemy
implementation. The claim step is the only place where workers contend:
a conditional UPDATE (``WHERE id = :id AND status = 'QUEUED'``) lets exactly
one worker move a given job out of QUEUED, whatever the database.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from typing import Generator, List, Optional, Protocol

from sqlalchemy import and_, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..core.exceptions import InvalidTransitionError, StoreError
from ..models.job import JobStatus, RenderJob
from ..schemas.job import RenderJobRead
from ..schemas.render_spec import LongformRenderSpec
from .job_state import INITIAL_PROGRESS, predecessors, transition_values

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100


class JobStore(Protocol):
    def create_job(self, owner_id: str, spec: LongformRenderSpec) -> RenderJobRead: ...  # pragma: no cover

    def claim_next_queued(self, worker_id: Optional[str] = None) -> Optional[RenderJobRead]: ...  # pragma: no cover

    def update_job(
        self,
        job_id: str,
        *,
        status: Optional[JobStatus] = None,
        progress: Optional[int] = None,
        output_url: Optional[str] = None,
        error_message: Optional[str] = None,
        object_key: Optional[str] = None,
    ) -> RenderJobRead: ...  # pragma: no cover

    def get_job(self, job_id: str, owner_id: str) -> Optional[RenderJobRead]: ...  # pragma: no cover

    def list_jobs(
        self, owner_id: str, limit: int = DEFAULT_PAGE_SIZE, cursor: Optional[str] = None
    ) -> List[RenderJobRead]: ...  # pragma: no cover


class SqlJobStore:
    """JobStore on top of a SQLAlchemy session factory."""

    def __init__(self, session_factory: sessionmaker, max_claim_attempts: int = 5):
        self._session_factory = session_factory
        self.max_claim_attempts = max_claim_attempts

    @contextmanager
    def _session(self) -> Generator[Session, None, None]:
        session = self._session_factory()
        try:
            yield session
        except SQLAlchemyError as e:
            session.rollback()
            raise StoreError(f"Job store error: {e}") from e
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def create_job(self, owner_id: str, spec: LongformRenderSpec) -> RenderJobRead:
        with self._session() as db:
            job = RenderJob(
                owner_id=owner_id,
                payload=spec.to_payload(),
                status=JobStatus.QUEUED.value,
                progress=INITIAL_PROGRESS,
                created_at=datetime.utcnow(),
            )
            db.add(job)
            db.commit()
            db.refresh(job)
            logger.info(f"Created render job {job.id} for owner={owner_id}")
            return RenderJobRead.model_validate(job)

    def claim_next_queued(self, worker_id: Optional[str] = None) -> Optional[RenderJobRead]:
        """
        Atomically take the oldest QUEUED job and mark it PROCESSING.

        If another worker wins the race for the candidate, the next oldest
        candidate is tried, up to max_claim_attempts times.

        Returns:
            The claimed job, or None if nothing is queued
        """
        for attempt in range(self.max_claim_attempts):
            with self._session() as db:
                candidate_id = db.execute(
                    select(RenderJob.id)
                    .where(RenderJob.status == JobStatus.QUEUED.value)
                    .order_by(RenderJob.created_at.asc(), RenderJob.seq.asc())
                    .limit(1)
                ).scalar_one_or_none()

            if candidate_id is None:
                return None

            if self.try_claim(candidate_id, worker_id):
                return self._get(candidate_id)

            logger.debug(f"Lost claim race for job {candidate_id} (attempt {attempt + 1})")

        return None

    def try_claim(self, job_id: str, worker_id: Optional[str] = None) -> bool:
        """Conditional QUEUED -> PROCESSING update; True only for the winner."""
        values = transition_values(JobStatus.PROCESSING, datetime.utcnow(), worker_id=worker_id)
        with self._session() as db:
            result = db.execute(
                update(RenderJob)
                .where(
                    RenderJob.id == job_id,
                    RenderJob.status == JobStatus.QUEUED.value,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            db.commit()
            return result.rowcount == 1

    def update_job(
        self,
        job_id: str,
        *,
        status: Optional[JobStatus] = None,
        progress: Optional[int] = None,
        output_url: Optional[str] = None,
        error_message: Optional[str] = None,
        object_key: Optional[str] = None,
    ) -> RenderJobRead:
        """
        Apply a status transition or a progress update.

        With ``status``, the transition must be allowed from the job's current
        state, otherwise InvalidTransitionError is raised and nothing changes.
        Terminal states force progress to 100.

        With only ``progress``, the value is written while the job is
        PROCESSING and only if it is higher than the stored one.

        Raises:
            InvalidTransitionError: Transition not allowed from current state
            StoreError: Job not found or database failure
        """
        if status is not None:
            target = JobStatus(status)
            sources = predecessors(target)
            if not sources:
                raise InvalidTransitionError(job_id, None, target.value)
            values = transition_values(
                target,
                datetime.utcnow(),
                output_url=output_url,
                error_message=error_message,
            )
            if object_key is not None:
                values["object_key"] = object_key
            with self._session() as db:
                result = db.execute(
                    update(RenderJob)
                    .where(
                        RenderJob.id == job_id,
                        RenderJob.status.in_([s.value for s in sources]),
                    )
                    .values(**values)
                    .execution_options(synchronize_session=False)
                )
                db.commit()
                applied = result.rowcount == 1
            if not applied:
                current = self._get(job_id)
                raise InvalidTransitionError(job_id, current.status.value, target.value)
            return self._get(job_id)

        if progress is not None:
            progress = max(0, min(100, int(progress)))
            with self._session() as db:
                db.execute(
                    update(RenderJob)
                    .where(
                        RenderJob.id == job_id,
                        RenderJob.status == JobStatus.PROCESSING.value,
                        RenderJob.progress < progress,
                    )
                    .values(progress=progress)
                    .execution_options(synchronize_session=False)
                )
                db.commit()
            return self._get(job_id)

        raise ValueError("update_job needs a status or a progress value")

    def get_job(self, job_id: str, owner_id: str) -> Optional[RenderJobRead]:
        with self._session() as db:
            job = db.execute(
                select(RenderJob).where(RenderJob.id == job_id, RenderJob.owner_id == owner_id)
            ).scalar_one_or_none()
            return RenderJobRead.model_validate(job) if job else None

    def list_jobs(
        self, owner_id: str, limit: int = DEFAULT_PAGE_SIZE, cursor: Optional[str] = None
    ) -> List[RenderJobRead]:
        """
        List an owner's jobs, newest first.

        Args:
            owner_id: Owning user id
            limit: Page size, clamped to 1-100
            cursor: Id of the last job of the previous page

        Returns:
            Up to ``limit`` jobs created before the cursor job
        """
        limit = max(1, min(int(limit), MAX_PAGE_SIZE))
        with self._session() as db:
            query = select(RenderJob).where(RenderJob.owner_id == owner_id)
            if cursor:
                anchor = db.execute(
                    select(RenderJob).where(RenderJob.id == cursor, RenderJob.owner_id == owner_id)
                ).scalar_one_or_none()
                if anchor is None:
                    return []
                query = query.where(
                    or_(
                        RenderJob.created_at < anchor.created_at,
                        and_(RenderJob.created_at == anchor.created_at, RenderJob.seq < anchor.seq),
                    )
                )
            jobs = db.execute(
                query.order_by(RenderJob.created_at.desc(), RenderJob.seq.desc()).limit(limit)
            ).scalars().all()
            return [RenderJobRead.model_validate(job) for job in jobs]

    def _get(self, job_id: str) -> RenderJobRead:
        with self._session() as db:
            job = db.execute(
                select(RenderJob).where(RenderJob.id == job_id)
            ).scalar_one_or_none()
            if job is None:
                raise StoreError(f"Job not found: {job_id}")
            return RenderJobRead.model_validate(job)
