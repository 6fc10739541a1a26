import copy
import datetime
import json
import logging
import math
import re

from errors import UpstreamError
from llm_service import GeminiClient
from models import Interview, as_utc, utcnow
from stores import InterviewStore

logger = logging.getLogger(__name__)

SCORE_FIELDS = ("overall_score", "technical_score", "communication_score", "problem_solving_score")
LIST_FIELDS = ("strengths", "improvements", "key_highlights")

FALLBACK_ANALYSIS = {
    "overall_score": 75,
    "technical_score": 75,
    "communication_score": 75,
    "problem_solving_score": 75,
    "feedback": "Interview completed successfully. Detailed analysis will be available shortly.",
    "strengths": ["Good communication", "Relevant experience", "Positive attitude"],
    "improvements": ["Technical knowledge", "Problem-solving approach", "Specific examples"],
    "key_highlights": ["Engaged throughout", "Relevant background", "Professional demeanor"],
}

_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


def build_feedback_prompt(interview: Interview, transcript: str, duration) -> str:
    return f"""You are an expert interview coach. Analyze this interview transcript and provide detailed feedback.

Job Title: {interview.job_title}
Job Description: {interview.job_description or "Not provided"}
Candidate Summary: {interview.user_summary}
Interview Transcript: {transcript}
Duration: {duration} minutes

Please provide:
1. Overall score (0-100)
2. Technical skills score (0-100)
3. Communication skills score (0-100)
4. Problem-solving skills score (0-100)
5. Detailed feedback (2-3 paragraphs)
6. Top 3 strengths
7. Top 3 areas for improvement
8. 3 key highlights from the interview

Format your response as JSON with these exact keys:
{{
  "overall_score": number,
  "technical_score": number,
  "communication_score": number,
  "problem_solving_score": number,
  "feedback": "string",
  "strengths": ["strength1", "strength2", "strength3"],
  "improvements": ["improvement1", "improvement2", "improvement3"],
  "key_highlights": ["highlight1", "highlight2", "highlight3"]
}}"""


def strip_code_fences(text: str) -> str:
    text = text.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.endswith("```"):
            text = text[:-3]
        elif "```" in text:
            text = text[:text.rfind("```")]
    return text.strip()


def _clamp_score(value, default: int) -> int:
    try:
        numeric = float(value)
    except (TypeError, ValueError):
        return default
    if not math.isfinite(numeric):
        return default
    return max(0, min(100, round(numeric)))


def _normalize_string_list(value, default: list[str]) -> list[str]:
    if not isinstance(value, list):
        return list(default)
    out = [str(item).strip() for item in value if str(item).strip()]
    return out or list(default)


def parse_analysis(text: str) -> dict:
    """Parse the model answer into the 8-field analysis. Raises ValueError when unusable."""
    cleaned = strip_code_fences(text)
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError:
        match = _JSON_OBJECT_RE.search(cleaned)
        if not match:
            raise ValueError("no JSON object in model output")
        try:
            data = json.loads(match.group())
        except json.JSONDecodeError as e:
            raise ValueError(f"malformed JSON in model output: {e}") from e
    if not isinstance(data, dict):
        raise ValueError("model output is not a JSON object")

    analysis = {}
    for key in SCORE_FIELDS:
        analysis[key] = _clamp_score(data.get(key), FALLBACK_ANALYSIS[key])
    feedback = data.get("feedback")
    analysis["feedback"] = str(feedback).strip() if feedback else FALLBACK_ANALYSIS["feedback"]
    for key in LIST_FIELDS:
        analysis[key] = _normalize_string_list(data.get(key), FALLBACK_ANALYSIS[key])
    return analysis


async def analyze_transcript(llm: GeminiClient, prompt: str, model: str | None = None) -> tuple[dict, str, str | None]:
    """Returns (analysis, scoring_source, fallback_reason). Never raises for model failures."""
    try:
        text = await llm.generate(prompt, model=model)
        return parse_analysis(text), "model", None
    except UpstreamError as e:
        reason = f"model call failed: {e.message}"
    except (ValueError, OverflowError) as e:
        reason = f"unparseable model output: {e}"
    logger.warning(f"[SCORING] Using fallback analysis ({reason})")
    return copy.deepcopy(FALLBACK_ANALYSIS), "fallback", reason


def compute_duration_minutes(duration, start: datetime.datetime | None, end: datetime.datetime) -> int:
    if duration and math.isfinite(duration) and duration > 0:
        return round(duration)
    start = as_utc(start) or end
    return round((end - start).total_seconds() / 60)


async def score_interview(
    store: InterviewStore,
    llm: GeminiClient,
    interview_id: str,
    user_id: str,
    transcript: str,
    duration=None,
    model: str | None = None,
    now: datetime.datetime | None = None,
) -> tuple[Interview, dict]:
    interview = await store.get_by_id(interview_id, user_id)

    prompt = build_feedback_prompt(interview, transcript, duration)
    analysis, source, reason = await analyze_transcript(llm, prompt, model=model)

    end = now or utcnow()
    values = {
        "end_date_time": end,
        "duration_minutes": compute_duration_minutes(duration, interview.start_date_time, end),
        "transcript": transcript,
        "scoring_source": source,
        "fallback_reason": reason,
        **analysis,
    }
    interview = await store.save_results(interview_id, user_id, values)
    logger.info(
        f"[SCORING] {interview_id} scored overall={analysis['overall_score']} source={source}"
    )
    return interview, {**analysis, "scoring_source": source}
