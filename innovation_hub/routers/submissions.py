from fastapi import APIRouter, Request, UploadFile, File, Form, Depends, HTTPException
from fastapi.responses import FileResponse, HTMLResponse, RedirectResponse
from sqlmodel import Session
from typing import List, Optional
import logging

from innovation_hub.auth import login_required, require_capability
from innovation_hub.db import engine
from innovation_hub.exceptions import (
    AttachmentUploadError,
    ChallengeClosedError,
    ChallengeNotFoundError,
    DuplicateSubmissionError,
)
from innovation_hub.flash import flash
from innovation_hub.forms import FormValidationError, MAX_ATTACHMENTS, SubmissionDraft
from innovation_hub.models import Challenge, ChallengeSubmission, User
from innovation_hub.permissions import Capability, can
from innovation_hub.services import challenge_browser
from innovation_hub.services.challenge_browser import ALL, SubmissionBrowserState
from innovation_hub.services.file_security import format_bytes
from innovation_hub.services.submissions import SubmissionService, submission_service
from innovation_hub.templating import templates

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/challenges", tags=["submissions"])

ALREADY_SUBMITTED = "You have already submitted to this challenge."
SUBMITTED_OK = "Your submission has been sent successfully! You will be notified when it's reviewed."

require_submission_viewer = require_capability(
    Capability.VIEW_SUBMISSIONS, "Only reviewers, managers, administrators and developers can view submissions",
)


def get_submission_service() -> SubmissionService:
    return submission_service


def _render_form(request: Request, user: User, challenge: Challenge, service: SubmissionService,
                 values: Optional[dict] = None, errors: Optional[dict] = None, status_code: int = 200):
    limits = service.attachment_limits()
    return templates.TemplateResponse(request, "challenges/submit.html", {
        "user": user,
        "challenge": challenge,
        "values": values or {},
        "errors": errors or {},
        "max_attachments": MAX_ATTACHMENTS,
        "max_file_size": limits["max_file_size"],
        "max_file_size_label": format_bytes(limits["max_file_size"]),
        "accept": ",".join("." + ext for ext in limits["allowed_extensions"]),
        "allowed_mime_types": limits["allowed_mime_types"],
    }, status_code=status_code)


@router.get("/{challenge_id}/submit", response_class=HTMLResponse)
def submit_form(
    challenge_id: int,
    request: Request,
    current_user: User = Depends(login_required),
    service: SubmissionService = Depends(get_submission_service),
):
    try:
        challenge = service.open_form(challenge_id, current_user)
    except (ChallengeNotFoundError, ChallengeClosedError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DuplicateSubmissionError:
        flash(request, "error", ALREADY_SUBMITTED)
        return RedirectResponse(url=f"/challenges/{challenge_id}", status_code=303)

    return _render_form(request, current_user, challenge, service)


@router.post("/{challenge_id}/submit")
async def submit(
    challenge_id: int,
    request: Request,
    title: str = Form(""),
    description: str = Form(""),
    solution_approach: str = Form(""),
    implementation_plan: str = Form(""),
    team_submission: bool = Form(False),
    team_members: str = Form(""),
    discard: List[int] = Form([]),
    attachments: Optional[List[UploadFile]] = File(None),
    current_user: User = Depends(login_required),
    service: SubmissionService = Depends(get_submission_service),
):
    draft = SubmissionDraft(
        title=title,
        description=description,
        solution_approach=solution_approach,
        implementation_plan=implementation_plan,
        attachments=[a for a in (attachments or []) if a.filename],
        team_members=team_members,
    )
    draft.toggle_team_submission(team_submission)
    draft.remove_attachments(discard)

    try:
        await service.submit(challenge_id, current_user, draft, request=request)
    except (ChallengeNotFoundError, ChallengeClosedError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except DuplicateSubmissionError:
        flash(request, "error", ALREADY_SUBMITTED)
        return RedirectResponse(url=f"/challenges/{challenge_id}", status_code=303)
    except FormValidationError as e:
        challenge = _load_challenge(challenge_id)
        return _render_form(request, current_user, challenge, service, draft.values(), e.errors, status_code=422)
    except AttachmentUploadError as e:
        flash(request, "error", "File upload failed: " + ", ".join(e.errors))
        challenge = _load_challenge(challenge_id)
        return _render_form(request, current_user, challenge, service, draft.values(), status_code=422)

    flash(request, "success", SUBMITTED_OK)
    return RedirectResponse(url=f"/challenges/{challenge_id}", status_code=303)


@router.get("/{challenge_id}/submissions", response_class=HTMLResponse)
def list_submissions(
    challenge_id: int,
    request: Request,
    search: str = "",
    status: str = ALL,
    sort_by: str = "created_at",
    sort_direction: str = "desc",
    page: int = 1,
    current_user: User = Depends(require_submission_viewer),
):
    state = SubmissionBrowserState.from_params(search, status, ALL, sort_by, sort_direction, page)
    with Session(engine) as session:
        challenge = session.get(Challenge, challenge_id)
        if not challenge:
            raise HTTPException(status_code=404, detail="Challenge not found")
        result = challenge_browser.list_submissions(session, challenge.id, state)

    return templates.TemplateResponse(request, "challenges/submissions.html", {
        "user": current_user,
        "challenge": challenge,
        "state": state,
        "submissions": result,
        "statuses": challenge_browser.SUBMISSION_STATUS_CHOICES,
    })


@router.get("/{challenge_id}/submissions/{submission_id}/attachments/{index}")
def download_attachment(
    challenge_id: int,
    submission_id: int,
    index: int,
    current_user: User = Depends(login_required),
    service: SubmissionService = Depends(get_submission_service),
):
    with Session(engine) as session:
        submission = session.get(ChallengeSubmission, submission_id)
    if submission is None or submission.challenge_id != challenge_id:
        raise HTTPException(status_code=404, detail="Submission not found")
    if submission.author_id != current_user.id and not can(current_user, Capability.VIEW_SUBMISSIONS):
        raise HTTPException(status_code=403, detail="You cannot access this attachment")
    if not 0 <= index < len(submission.attachments):
        raise HTTPException(status_code=404, detail="Attachment not found")

    meta = submission.attachments[index]
    path = service.files.resolve(meta["path"])
    if path is None or not path.is_file():
        logger.warning("Attachment %s of submission %s missing from storage", meta["path"], submission.id)
        raise HTTPException(status_code=404, detail="Attachment not found")
    logger.info("User %s downloaded %s from submission %s", current_user.id, meta["path"], submission.id)
    return FileResponse(path, media_type=meta.get("mime_type"), filename=meta.get("original_name"))


def _load_challenge(challenge_id: int) -> Challenge:
    with Session(engine) as session:
        challenge = session.get(Challenge, challenge_id)
    if not challenge:
        raise HTTPException(status_code=404, detail="Challenge not found")
    return challenge
