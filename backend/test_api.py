import asyncio
import base64
import datetime
import json

import fitz
import pytest

from conftest import OTHER_USER, USER, auth
from dependencies import get_avatar_client, get_llm
from errors import UpstreamError
from main import app
from models import Interview, utcnow
from sqlalchemy import update

JOB = {"jobTitle": "Backend Engineer", "jobDescription": "Python, Postgres", "jobSummary": "Builds APIs", "mentorId": "m-1"}


def create_interview(client, user_id=USER):
    response = client.post("/interviews", json=JOB, headers=auth(user_id))
    assert response.status_code == 201, response.text
    return response.json()["interview"]


def backdate_start(session_factory, interview_id, minutes):
    async def _update():
        async with session_factory() as session:
            await session.execute(
                update(Interview)
                .where(Interview.id == interview_id)
                .values(start_date_time=utcnow() - datetime.timedelta(minutes=minutes))
            )
            await session.commit()

    asyncio.run(_update())


# ── Identity ─────────────────────────────────────────────

def test_requests_without_identity_are_unauthorized(client):
    for method, path in [
        ("get", "/profile"),
        ("delete", "/profile"),
        ("post", "/interviews"),
        ("get", "/interviews/abc"),
        ("patch", "/interviews/abc"),
        ("post", "/interviews/abc/results"),
        ("post", "/video-token"),
    ]:
        response = getattr(client, method)(path)
        assert response.status_code == 401, path
        assert response.json() == {"error": "Unauthorized"}


def test_health(client):
    assert client.get("/health").json()["status"] == "healthy"


# ── Interviews ───────────────────────────────────────────

def test_create_without_resume_is_not_found(client):
    response = client.post("/interviews", json={"jobTitle": "Backend Engineer", "jobSummary": "Builds APIs"},
                           headers=auth())
    assert response.status_code == 404
    assert "resume" in response.json()["error"]


def test_create_requires_title_and_summary(client, with_resume):
    response = client.post("/interviews", json={"jobTitle": "Backend Engineer"}, headers=auth())
    assert response.status_code == 400
    assert response.json()["error"] == "Job title and job summary are required"


def test_create_and_fetch(client, with_resume):
    interview = create_interview(client)
    assert interview["status"] == "scheduled"
    assert interview["user_summary"] == with_resume.resume_summary
    assert interview["mentor_id"] == "m-1"
    assert interview["timeBudgetSeconds"] == 180

    response = client.get(f"/interviews/{interview['id']}", headers=auth())
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["interview"]["id"] == interview["id"]


def test_fetch_missing_interview(client):
    response = client.get("/interviews/nope", headers=auth())
    assert response.status_code == 404
    assert response.json() == {"error": "Interview not found"}


def test_other_users_get_forbidden(client, with_resume):
    interview = create_interview(client)
    assert client.get(f"/interviews/{interview['id']}", headers=auth(OTHER_USER)).status_code == 403
    response = client.patch(f"/interviews/{interview['id']}", json={"status": "in-progress"}, headers=auth(OTHER_USER))
    assert response.status_code == 403
    assert response.json() == {"error": "Access denied"}


def test_other_users_cannot_submit_results(client, llm, with_resume):
    interview = create_interview(client)
    response = client.post(f"/interviews/{interview['id']}/results",
                           json={"transcript": "Q: Hi\nA: Hello", "duration": 3}, headers=auth(OTHER_USER))
    assert response.status_code == 403
    assert response.json() == {"error": "Access denied"}

    stored = client.get(f"/interviews/{interview['id']}", headers=auth()).json()["interview"]
    assert stored["status"] == "scheduled"
    assert stored["overall_score"] is None
    assert stored["transcript"] is None
    assert stored["scoring_source"] is None


def test_patch_invalid_status(client, with_resume):
    interview = create_interview(client)
    response = client.patch(f"/interviews/{interview['id']}", json={"status": "bogus"}, headers=auth())
    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid status")


def test_patch_starts_and_completes(client, with_resume):
    interview = create_interview(client)
    started = client.patch(f"/interviews/{interview['id']}", json={"status": "in-progress"}, headers=auth()).json()
    assert started["interview"]["status"] == "in-progress"
    assert started["interview"]["start_date_time"] is not None

    done = client.patch(f"/interviews/{interview['id']}", json={"status": "completed"}, headers=auth()).json()
    assert done["interview"]["status"] == "completed"
    assert done["interview"]["start_date_time"] == started["interview"]["start_date_time"]

    back = client.patch(f"/interviews/{interview['id']}", json={"status": "scheduled"}, headers=auth())
    assert back.status_code == 400


def test_stale_in_progress_interview_reads_as_completed(client, session_factory, with_resume):
    interview = create_interview(client)
    client.patch(f"/interviews/{interview['id']}", json={"status": "in-progress"}, headers=auth())
    backdate_start(session_factory, interview["id"], minutes=6)

    for _ in range(2):
        response = client.get(f"/interviews/{interview['id']}", headers=auth())
        assert response.json()["interview"]["status"] == "completed"


def test_recent_in_progress_interview_stays_open(client, session_factory, with_resume):
    interview = create_interview(client)
    client.patch(f"/interviews/{interview['id']}", json={"status": "in-progress"}, headers=auth())
    backdate_start(session_factory, interview["id"], minutes=2)
    response = client.get(f"/interviews/{interview['id']}", headers=auth())
    assert response.json()["interview"]["status"] == "in-progress"


def test_patch_on_stale_interview_sees_it_completed(client, session_factory, with_resume):
    interview = create_interview(client)
    client.patch(f"/interviews/{interview['id']}", json={"status": "in-progress"}, headers=auth())
    backdate_start(session_factory, interview["id"], minutes=6)

    response = client.patch(f"/interviews/{interview['id']}", json={"status": "in-progress"}, headers=auth())
    assert response.status_code == 400
    assert response.json()["error"] == "Invalid status transition: completed -> in-progress"
    stored = client.get(f"/interviews/{interview['id']}", headers=auth()).json()["interview"]
    assert stored["status"] == "completed"


# ── Results ──────────────────────────────────────────────

def test_results_with_fenced_json(client, llm, with_resume):
    interview = create_interview(client)
    llm.replies.append("```json\n" + json.dumps({
        "overall_score": 91,
        "technical_score": 90,
        "communication_score": 93,
        "problem_solving_score": 88,
        "feedback": "Excellent systems thinking.",
        "strengths": ["a", "b", "c"],
        "improvements": ["d", "e", "f"],
        "key_highlights": ["g", "h", "i"],
    }) + "\n```")

    response = client.post(f"/interviews/{interview['id']}/results",
                           json={"transcript": "Q: Hi\nA: Hello", "duration": 3}, headers=auth())
    assert response.status_code == 200
    body = response.json()
    assert body["analysis"]["overall_score"] == 91
    assert body["analysis"]["scoring_source"] == "model"
    assert body["interview"]["status"] == "completed"
    assert body["interview"]["feedback"] == "Excellent systems thinking."
    assert body["interview"]["duration_minutes"] == 3
    assert body["interview"]["end_date_time"] is not None
    assert "Backend Engineer" in llm.prompts[-1]


def test_results_with_unparseable_answer_uses_fallback(client, llm, with_resume):
    interview = create_interview(client)
    llm.replies.append("I'm sorry, I can't help with that.")

    response = client.post(f"/interviews/{interview['id']}/results", json={"transcript": "..."}, headers=auth())
    assert response.status_code == 200
    stored = client.get(f"/interviews/{interview['id']}", headers=auth()).json()["interview"]
    assert [stored[k] for k in ("overall_score", "technical_score", "communication_score", "problem_solving_score")] == [75] * 4
    assert stored["strengths"] == ["Good communication", "Relevant experience", "Positive attitude"]
    assert stored["scoring_source"] == "fallback"


def test_results_when_model_is_down_still_succeed(client, failing_llm, with_resume):
    interview = create_interview(client)
    app.dependency_overrides[get_llm] = lambda: failing_llm
    response = client.post(f"/interviews/{interview['id']}/results", json={"transcript": "..."}, headers=auth())
    assert response.status_code == 200
    assert response.json()["analysis"]["scoring_source"] == "fallback"


def test_results_with_infinite_score_still_succeed(client, llm, with_resume):
    interview = create_interview(client)
    llm.replies.append('{"overall_score": Infinity, "technical_score": 1e999, "feedback": "Solid."}')

    response = client.post(f"/interviews/{interview['id']}/results", json={"transcript": "..."}, headers=auth())
    assert response.status_code == 200
    analysis = response.json()["analysis"]
    assert analysis["overall_score"] == 75
    assert analysis["technical_score"] == 75
    assert analysis["feedback"] == "Solid."


@pytest.mark.parametrize("duration", ["-40", "1e300", "Infinity", "NaN"])
def test_results_reject_out_of_range_duration(client, llm, with_resume, duration):
    interview = create_interview(client)
    response = client.post(f"/interviews/{interview['id']}/results",
                           content=f'{{"transcript": "Q: Hi", "duration": {duration}}}',
                           headers={**auth(), "Content-Type": "application/json"})
    assert response.status_code == 400
    assert response.json()["error"].startswith("Invalid request: duration")
    assert llm.prompts == []

    stored = client.get(f"/interviews/{interview['id']}", headers=auth()).json()["interview"]
    assert stored["duration_minutes"] is None
    assert stored["status"] == "scheduled"


def test_results_for_missing_interview(client):
    response = client.post("/interviews/nope/results", json={"transcript": "..."}, headers=auth())
    assert response.status_code == 404


def test_results_require_transcript(client, with_resume):
    interview = create_interview(client)
    response = client.post(f"/interviews/{interview['id']}/results", json={}, headers=auth())
    assert response.status_code == 400


# ── Profile & Resume ─────────────────────────────────────

def test_profile_created_on_first_fetch(client):
    response = client.get("/profile", headers=auth())
    assert response.status_code == 200
    profile = response.json()["userProfile"]
    assert profile["user_id"] == USER
    assert profile["resume_summary"] is None
    assert client.get("/profile", headers=auth()).json()["userProfile"]["id"] == profile["id"]


def test_reset_profile(client, with_resume):
    response = client.delete("/profile", headers=auth())
    assert response.json()["success"] is True
    profile = client.get("/profile", headers=auth()).json()["userProfile"]
    assert profile["resume_url"] is None
    assert profile["resume_summary"] is None


def test_process_text_resume(client, llm):
    llm.replies.append("Frontend developer with React focus.")
    response = client.post("/resume/process", headers=auth(), json={
        "fileUrl": "http://files.test/resumes/cv.txt",
        "fileContent": "Jane Doe\nReact, TypeScript, 4 years",
        "fileName": "cv.txt",
        "fileType": "text",
    })
    assert response.status_code == 200
    body = response.json()
    assert body["resumeSummary"] == "Frontend developer with React focus."
    assert body["userProfile"]["resume_url"] == "http://files.test/resumes/cv.txt"
    assert body["fileName"] == "cv.txt"
    assert "React, TypeScript" in llm.prompts[-1]


def test_process_base64_pdf_resume(client, llm):
    doc = fitz.open()
    page = doc.new_page()
    page.insert_text((72, 72), "Kubernetes operator experience")
    pdf_bytes = doc.tobytes()
    doc.close()

    response = client.post("/resume/process", headers=auth(), json={
        "fileUrl": "http://files.test/resumes/cv.pdf",
        "fileContent": base64.b64encode(pdf_bytes).decode(),
        "fileType": "pdf",
    })
    assert response.status_code == 200
    assert "Kubernetes operator experience" in llm.prompts[-1]


def test_process_resume_requires_url_and_content(client):
    response = client.post("/resume/process", headers=auth(), json={"fileUrl": "http://x"})
    assert response.status_code == 400
    assert response.json()["error"] == "File URL and content are required"


def test_upload_resume(client, llm, resume_storage):
    llm.replies.append("Site reliability engineer.")
    response = client.post("/resume", headers=auth(),
                           files={"resume": ("my cv.txt", b"SRE, on-call, Terraform", "text/plain")})
    assert response.status_code == 200
    body = response.json()
    assert body["fileUrl"].startswith("http://files.test/resumes/user_alice-")
    assert body["fileUrl"].endswith("-my_cv.txt")
    assert body["userProfile"]["resume_summary"] == "Site reliability engineer."


def test_upload_without_file(client):
    response = client.post("/resume", headers=auth())
    assert response.status_code == 400


def test_summarization_failure_is_surfaced(client, failing_llm):
    app.dependency_overrides[get_llm] = lambda: failing_llm
    response = client.post("/resume/process", headers=auth(), json={
        "fileUrl": "http://files.test/resumes/cv.txt",
        "fileContent": "Some resume",
    })
    assert response.status_code == 502
    profile = client.get("/profile", headers=auth()).json()["userProfile"]
    assert profile["resume_summary"] is None


# ── Job summary ──────────────────────────────────────────

def test_process_job(client, llm):
    llm.replies.append("Owns payment APIs end to end.")
    response = client.post("/job/process", headers=auth(), json={"jobTitle": "Backend Engineer"})
    assert response.json() == {"success": True, "jobSummary": "Owns payment APIs end to end."}
    assert "Job Description: Not provided" in llm.prompts[-1]


def test_process_job_requires_title(client):
    response = client.post("/job/process", headers=auth(), json={"jobDescription": "x"})
    assert response.status_code == 400


# ── Video token ──────────────────────────────────────────

class StubAvatar:
    def __init__(self, token=None, error=None):
        self.token = token
        self.error = error

    async def create_token(self):
        if self.error:
            raise self.error
        return self.token


def test_video_token(client):
    app.dependency_overrides[get_avatar_client] = lambda: StubAvatar(token="tok_123")
    response = client.post("/video-token", headers=auth())
    assert response.json() == {"token": "tok_123"}


def test_video_token_upstream_failure(client):
    app.dependency_overrides[get_avatar_client] = lambda: StubAvatar(error=UpstreamError("Token not found"))
    response = client.post("/video-token", headers=auth())
    assert response.status_code == 502
    assert response.json() == {"error": "Token not found"}
