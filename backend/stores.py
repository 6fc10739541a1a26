"""
Row stores for user profiles and interviews.

Each store is built from an async_sessionmaker and opens one session per
operation; there is no shared in-process state.
"""
import datetime
import logging
from typing import Callable

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

import lifecycle
from database import dialect_insert
from errors import Forbidden, NotFoundError, PersistenceError, ValidationError
from models import Interview, UserProfile, utcnow

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime.datetime]


class ProfileStore:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession], clock: Clock = utcnow):
        self._session_factory = session_factory
        self._clock = clock

    async def get(self, user_id: str) -> UserProfile | None:
        async with self._session_factory() as session:
            result = await session.execute(select(UserProfile).where(UserProfile.user_id == user_id))
            return result.scalar_one_or_none()

    async def get_or_create(self, user_id: str) -> UserProfile:
        now = self._clock()
        async with self._session_factory() as session:
            insert = dialect_insert(session)
            stmt = (
                insert(UserProfile)
                .values(user_id=user_id, created_at=now, updated_at=now)
                .on_conflict_do_nothing(index_elements=[UserProfile.user_id])
            )
            try:
                await session.execute(stmt)
                await session.commit()
            except SQLAlchemyError as e:
                logger.error(f"[PROFILE] Failed to create profile for {user_id}: {e}")
                raise PersistenceError(f"Failed to create user profile: {e}") from e
            result = await session.execute(select(UserProfile).where(UserProfile.user_id == user_id))
            return result.scalar_one()

    async def upsert_resume(self, user_id: str, resume_url: str, resume_summary: str) -> UserProfile:
        now = self._clock()
        async with self._session_factory() as session:
            insert = dialect_insert(session)
            stmt = insert(UserProfile).values(
                user_id=user_id,
                resume_url=resume_url,
                resume_summary=resume_summary,
                created_at=now,
                updated_at=now,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[UserProfile.user_id],
                set_={
                    "resume_url": stmt.excluded.resume_url,
                    "resume_summary": stmt.excluded.resume_summary,
                    "updated_at": stmt.excluded.updated_at,
                },
            )
            try:
                await session.execute(stmt)
                await session.commit()
            except SQLAlchemyError as e:
                logger.error(f"[PROFILE] Failed to save resume for {user_id}: {e}")
                raise PersistenceError(f"Failed to update user profile: {e}") from e
            result = await session.execute(select(UserProfile).where(UserProfile.user_id == user_id))
            return result.scalar_one()

    async def reset_resume(self, user_id: str) -> None:
        async with self._session_factory() as session:
            try:
                await session.execute(
                    update(UserProfile)
                    .where(UserProfile.user_id == user_id)
                    .values(resume_url=None, resume_summary=None, updated_at=self._clock())
                )
                await session.commit()
            except SQLAlchemyError as e:
                logger.error(f"[PROFILE] Failed to reset profile for {user_id}: {e}")
                raise PersistenceError(f"Failed to reset user profile: {e}") from e


class InterviewStore:
    """Interview rows, always addressed on behalf of a caller (ownership-checked)."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], clock: Clock = utcnow):
        self._session_factory = session_factory
        self._clock = clock

    async def create(
        self,
        user_id: str,
        job_title: str | None,
        job_summary: str | None,
        resume_summary: str | None,
        job_description: str | None = None,
        mentor_id: str | None = None,
    ) -> Interview:
        if not job_title or not job_summary:
            raise ValidationError("Job title and job summary are required")
        if not resume_summary:
            raise NotFoundError("User profile with resume summary not found")

        now = self._clock()
        interview = Interview(
            user_id=user_id,
            job_title=job_title,
            job_description=job_description,
            user_summary=resume_summary,
            job_summary=job_summary,
            mentor_id=mentor_id,
            status=lifecycle.SCHEDULED,
            created_at=now,
            updated_at=now,
        )
        async with self._session_factory() as session:
            session.add(interview)
            await self._commit(session, "Failed to create interview")
        logger.info(f"[INTERVIEW] Created {interview.id} for user {user_id}")
        return interview

    async def _load_owned(self, session: AsyncSession, interview_id: str, user_id: str) -> Interview:
        result = await session.execute(select(Interview).where(Interview.id == interview_id))
        interview = result.scalar_one_or_none()
        if interview is None:
            raise NotFoundError("Interview not found")
        if interview.user_id != user_id:
            logger.warning(f"[INTERVIEW] User {user_id} denied access to {interview_id}")
            raise Forbidden("Access denied")
        return interview

    async def get_by_id(self, interview_id: str, user_id: str) -> Interview:
        async with self._session_factory() as session:
            interview = await self._load_owned(session, interview_id, user_id)
            if lifecycle.apply_auto_expiry(interview, self._clock()):
                logger.info(f"[INTERVIEW] {interview_id} exceeded its time window, marking completed")
                await self._commit(session, "Failed to update interview")
            return interview

    async def set_status(self, interview_id: str, user_id: str, new_status) -> Interview:
        lifecycle.validate_status(new_status)
        async with self._session_factory() as session:
            interview = await self._load_owned(session, interview_id, user_id)
            now = self._clock()
            if lifecycle.apply_auto_expiry(interview, now):
                logger.info(f"[INTERVIEW] {interview_id} exceeded its time window, marking completed")
                await self._commit(session, "Failed to update interview")
            previous = interview.status
            if lifecycle.apply_transition(interview, new_status, now):
                await self._commit(session, "Failed to update interview")
                logger.info(f"[INTERVIEW] {interview_id}: {previous} -> {new_status}")
            return interview

    async def save_results(self, interview_id: str, user_id: str, values: dict) -> Interview:
        async with self._session_factory() as session:
            interview = await self._load_owned(session, interview_id, user_id)
            for key, value in values.items():
                setattr(interview, key, value)
            interview.status = lifecycle.COMPLETED
            interview.updated_at = self._clock()
            await self._commit(session, "Failed to save interview results")
            return interview

    async def _commit(self, session: AsyncSession, message: str) -> None:
        try:
            await session.commit()
        except (SQLAlchemyError, OverflowError) as e:
            await session.rollback()
            logger.error(f"[INTERVIEW] {message}: {e}")
            raise PersistenceError(f"{message}: {e}") from e
