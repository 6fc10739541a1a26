from fastapi import FastAPI, UploadFile, File, Depends, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, Field
from typing import Optional
import logging
from dotenv import load_dotenv

load_dotenv()

from config import CLIENT_TIME_BUDGET, Settings, settings
from database import init_db
from dependencies import (
    get_avatar_client,
    get_current_user_id,
    get_interview_store,
    get_llm,
    get_profile_store,
    get_resume_storage,
    get_settings,
)
from avatar_service import AvatarTokenClient
from errors import ServiceError, ValidationError
from llm_service import GeminiClient, summarize_job, summarize_resume
from models import Interview
from resume_service import ResumeStorage, decode_resume_content, extract_resume_text
from scoring import score_interview
from stores import InterviewStore, ProfileStore

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Mock Interview API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.mount(
    "/resumes",
    StaticFiles(directory=settings.resume_storage_dir, check_dir=False),
    name="resumes",
)


@app.on_event("startup")
async def startup():
    await init_db()


# ── Error Handling ───────────────────────────────────────

@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    problems = "; ".join(
        f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body')}: {err.get('msg')}"
        for err in exc.errors()
    )
    return JSONResponse(status_code=400, content={"error": f"Invalid request: {problems}"})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "Internal server error"})


def interview_payload(interview: Interview) -> dict:
    return {
        **interview.to_dict(),
        "timeBudgetSeconds": int(CLIENT_TIME_BUDGET.total_seconds()),
    }


@app.get("/health")
async def health_check(config: Settings = Depends(get_settings)):
    return {
        "status": "healthy",
        "gemini_configured": bool(config.gemini_api_key),
        "avatar_configured": bool(config.heygen_api_key),
    }


# ── Profile ──────────────────────────────────────────────

@app.get("/profile")
async def get_profile(
    user_id: str = Depends(get_current_user_id),
    profiles: ProfileStore = Depends(get_profile_store),
):
    profile = await profiles.get_or_create(user_id)
    return {"success": True, "userProfile": profile.to_dict()}


@app.delete("/profile")
async def reset_profile(
    user_id: str = Depends(get_current_user_id),
    profiles: ProfileStore = Depends(get_profile_store),
):
    await profiles.reset_resume(user_id)
    logger.info(f"[PROFILE] Resume reset for {user_id}")
    return {"success": True, "message": "User profile reset successfully"}


# ── Resume ───────────────────────────────────────────────

class ProcessResumeRequest(BaseModel):
    file_url: Optional[str] = Field(None, alias="fileUrl")
    file_content: Optional[str] = Field(None, alias="fileContent")
    file_name: Optional[str] = Field(None, alias="fileName")
    file_type: Optional[str] = Field(None, alias="fileType")


@app.post("/resume")
async def upload_resume(
    resume: Optional[UploadFile] = File(None),
    user_id: str = Depends(get_current_user_id),
    profiles: ProfileStore = Depends(get_profile_store),
    storage: ResumeStorage = Depends(get_resume_storage),
    llm: GeminiClient = Depends(get_llm),
    config: Settings = Depends(get_settings),
):
    if resume is None:
        raise ValidationError("No file provided")

    file_bytes = await resume.read()
    resume_text = extract_resume_text(file_bytes, resume.filename, resume.content_type)
    file_url = await storage.save(user_id, resume.filename, file_bytes)

    resume_summary = await summarize_resume(llm, resume_text, model=config.summary_model)
    profile = await profiles.upsert_resume(user_id, file_url, resume_summary)
    return {
        "success": True,
        "fileUrl": file_url,
        "resumeSummary": resume_summary,
        "userProfile": profile.to_dict(),
    }


@app.post("/resume/process")
async def process_resume(
    body: ProcessResumeRequest,
    user_id: str = Depends(get_current_user_id),
    profiles: ProfileStore = Depends(get_profile_store),
    llm: GeminiClient = Depends(get_llm),
    config: Settings = Depends(get_settings),
):
    if not body.file_url or not body.file_content:
        raise ValidationError("File URL and content are required")

    resume_text = decode_resume_content(body.file_content, body.file_type)
    resume_summary = await summarize_resume(llm, resume_text, model=config.summary_model)
    profile = await profiles.upsert_resume(user_id, body.file_url, resume_summary)
    return {
        "success": True,
        "fileUrl": body.file_url,
        "resumeSummary": resume_summary,
        "userProfile": profile.to_dict(),
        "fileName": body.file_name,
    }


# ── Job Summary ──────────────────────────────────────────

class ProcessJobRequest(BaseModel):
    job_title: Optional[str] = Field(None, alias="jobTitle")
    job_description: Optional[str] = Field(None, alias="jobDescription")


@app.post("/job/process", dependencies=[Depends(get_current_user_id)])
async def process_job(
    body: ProcessJobRequest,
    llm: GeminiClient = Depends(get_llm),
    config: Settings = Depends(get_settings),
):
    if not body.job_title or not body.job_title.strip():
        raise ValidationError("Job title is required")
    job_summary = await summarize_job(llm, body.job_title.strip(), body.job_description, model=config.summary_model)
    return {"success": True, "jobSummary": job_summary}


# ── Interviews ───────────────────────────────────────────

class CreateInterviewRequest(BaseModel):
    job_title: Optional[str] = Field(None, alias="jobTitle")
    job_description: Optional[str] = Field(None, alias="jobDescription")
    job_summary: Optional[str] = Field(None, alias="jobSummary")
    mentor_id: Optional[str] = Field(None, alias="mentorId")


class UpdateStatusRequest(BaseModel):
    status: Optional[str] = None


class SubmitResultsRequest(BaseModel):
    transcript: Optional[str] = None
    # minutes, as measured by the client timer
    duration: Optional[float] = Field(None, ge=0, le=24 * 60, allow_inf_nan=False)


@app.post("/interviews", status_code=201)
async def create_interview(
    body: CreateInterviewRequest,
    user_id: str = Depends(get_current_user_id),
    profiles: ProfileStore = Depends(get_profile_store),
    interviews: InterviewStore = Depends(get_interview_store),
):
    profile = await profiles.get(user_id)
    interview = await interviews.create(
        user_id=user_id,
        job_title=body.job_title,
        job_summary=body.job_summary,
        resume_summary=profile.resume_summary if profile else None,
        job_description=body.job_description,
        mentor_id=body.mentor_id,
    )
    return {"success": True, "interview": interview_payload(interview)}


@app.get("/interviews/{interview_id}")
async def get_interview(
    interview_id: str,
    user_id: str = Depends(get_current_user_id),
    interviews: InterviewStore = Depends(get_interview_store),
):
    interview = await interviews.get_by_id(interview_id, user_id)
    return {"success": True, "interview": interview_payload(interview)}


@app.patch("/interviews/{interview_id}")
async def update_interview_status(
    interview_id: str,
    body: UpdateStatusRequest,
    user_id: str = Depends(get_current_user_id),
    interviews: InterviewStore = Depends(get_interview_store),
):
    interview = await interviews.set_status(interview_id, user_id, body.status)
    return {"success": True, "interview": interview_payload(interview)}


# ── Interview Results + Scoring ──────────────────────────

@app.post("/interviews/{interview_id}/results")
async def submit_interview_results(
    interview_id: str,
    body: SubmitResultsRequest,
    user_id: str = Depends(get_current_user_id),
    interviews: InterviewStore = Depends(get_interview_store),
    llm: GeminiClient = Depends(get_llm),
    config: Settings = Depends(get_settings),
):
    if body.transcript is None:
        raise ValidationError("Transcript is required")

    interview, analysis = await score_interview(
        interviews,
        llm,
        interview_id,
        user_id,
        body.transcript,
        duration=body.duration,
        model=config.scoring_model,
    )
    return {"success": True, "interview": interview_payload(interview), "analysis": analysis}


# ── Avatar Token ─────────────────────────────────────────

@app.post("/video-token", dependencies=[Depends(get_current_user_id)])
async def video_token(
    avatar: AvatarTokenClient = Depends(get_avatar_client),
):
    token = await avatar.create_token()
    return {"token": token}
