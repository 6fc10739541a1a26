"""
FastAPI dependency providers.

Handlers never import the engine or external clients directly; everything is
resolved here so tests can swap pieces through app.dependency_overrides.
"""
import logging

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from avatar_service import AvatarTokenClient
from config import Settings, settings
from database import async_session
from errors import Unauthorized
from llm_service import GeminiClient
from resume_service import ResumeStorage
from stores import InterviewStore, ProfileStore

logger = logging.getLogger(__name__)


def get_settings() -> Settings:
    return settings


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_session


def get_profile_store(session_factory=Depends(get_session_factory)) -> ProfileStore:
    return ProfileStore(session_factory)


def get_interview_store(session_factory=Depends(get_session_factory)) -> InterviewStore:
    return InterviewStore(session_factory)


def get_llm(config: Settings = Depends(get_settings)) -> GeminiClient:
    return GeminiClient.from_settings(config)


def get_avatar_client(config: Settings = Depends(get_settings)) -> AvatarTokenClient:
    return AvatarTokenClient.from_settings(config)


def get_resume_storage(config: Settings = Depends(get_settings)) -> ResumeStorage:
    return ResumeStorage.from_settings(config)


def get_current_user_id(request: Request, config: Settings = Depends(get_settings)) -> str:
    """Caller identity, forwarded by the identity-provider gateway in a header."""
    user_id = (request.headers.get(config.auth_user_header) or "").strip()
    if not user_id:
        logger.info(f"[AUTH] Rejected {request.method} {request.url.path}: no identity")
        raise Unauthorized("Unauthorized")
    return user_id
