import asyncio
import logging

from config import Settings
from errors import UpstreamError

logger = logging.getLogger(__name__)


class GeminiClient:
    """Thin wrapper around google-genai text generation."""

    def __init__(self, api_key: str | None, default_model: str):
        self.api_key = api_key
        self.default_model = default_model

    @classmethod
    def from_settings(cls, settings: Settings) -> "GeminiClient":
        return cls(api_key=settings.gemini_api_key, default_model=settings.summary_model)

    async def generate(self, prompt: str, model: str | None = None) -> str:
        if not self.api_key:
            raise UpstreamError("GEMINI_API_KEY not configured")
        model = model or self.default_model
        try:
            from google import genai

            client = genai.Client(api_key=self.api_key)
            response = await asyncio.to_thread(
                client.models.generate_content,
                model=model,
                contents=prompt,
            )
        except Exception as e:
            logger.error(f"[LLM] {model} generation error: {e}")
            raise UpstreamError(f"Model call failed: {e}") from e
        return (response.text or "").strip()


async def summarize_resume(llm: GeminiClient, resume_text: str, model: str | None = None) -> str:
    prompt = (
        "Please analyze this resume and provide a concise summary (2-3 sentences) highlighting "
        "the candidate's key skills, experience, and qualifications:\n\n"
        f"{resume_text}"
    )
    summary = await llm.generate(prompt, model=model)
    if not summary:
        raise UpstreamError("Resume summary came back empty")
    logger.info(f"[RESUME] Summary generated ({len(summary)} chars)")
    return summary


async def summarize_job(
    llm: GeminiClient, job_title: str, job_description: str | None = None, model: str | None = None
) -> str:
    prompt = f"""You are preparing a mock interview for the position of {job_title}.

Summarize this role in 2-3 sentences: the core responsibilities, the key skills an interviewer
should dig into, and the expected seniority.

Job Title: {job_title}
Job Description: {job_description or "Not provided"}

Return only plain text."""
    summary = await llm.generate(prompt, model=model)
    if not summary:
        raise UpstreamError("Job summary came back empty")
    return summary
