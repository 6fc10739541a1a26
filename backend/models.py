from sqlalchemy import Column, Integer, String, Text, DateTime, JSON
from sqlalchemy.orm import DeclarativeBase
import datetime
import uuid


def utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


def as_utc(value: datetime.datetime | None) -> datetime.datetime | None:
    # SQLite hands back naive datetimes; everything is stored as UTC.
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=datetime.timezone.utc)
    return value


def _new_id() -> str:
    return str(uuid.uuid4())


def _iso(value: datetime.datetime | None) -> str | None:
    value = as_utc(value)
    return value.isoformat() if value else None


class Base(DeclarativeBase):
    pass


class UserProfile(Base):
    __tablename__ = "user_profiles"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String, unique=True, nullable=False)
    resume_url = Column(String, nullable=True)
    resume_summary = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "resume_url": self.resume_url,
            "resume_summary": self.resume_summary,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }


class Interview(Base):
    __tablename__ = "interviews"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String, nullable=False, index=True)
    job_title = Column(String, nullable=False)
    job_description = Column(Text, nullable=True)
    user_summary = Column(Text, nullable=False)
    job_summary = Column(Text, nullable=False)
    mentor_id = Column(String, nullable=True)
    status = Column(String, nullable=False, default="scheduled")  # scheduled, in-progress, completed
    start_date_time = Column(DateTime(timezone=True), nullable=True)
    end_date_time = Column(DateTime(timezone=True), nullable=True)
    duration_minutes = Column(Integer, nullable=True)
    overall_score = Column(Integer, nullable=True)
    technical_score = Column(Integer, nullable=True)
    communication_score = Column(Integer, nullable=True)
    problem_solving_score = Column(Integer, nullable=True)
    feedback = Column(Text, nullable=True)
    strengths = Column(JSON, nullable=True)  # list of strings
    improvements = Column(JSON, nullable=True)  # list of strings
    key_highlights = Column(JSON, nullable=True)  # list of strings
    transcript = Column(Text, nullable=True)
    scoring_source = Column(String, nullable=True)  # model, fallback
    fallback_reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "job_title": self.job_title,
            "job_description": self.job_description,
            "user_summary": self.user_summary,
            "job_summary": self.job_summary,
            "mentor_id": self.mentor_id,
            "status": self.status,
            "start_date_time": _iso(self.start_date_time),
            "end_date_time": _iso(self.end_date_time),
            "duration_minutes": self.duration_minutes,
            "overall_score": self.overall_score,
            "technical_score": self.technical_score,
            "communication_score": self.communication_score,
            "problem_solving_score": self.problem_solving_score,
            "feedback": self.feedback,
            "strengths": self.strengths,
            "improvements": self.improvements,
            "key_highlights": self.key_highlights,
            "transcript": self.transcript,
            "scoring_source": self.scoring_source,
            "fallback_reason": self.fallback_reason,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
