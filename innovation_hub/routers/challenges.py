from fastapi import APIRouter, Request, Form, Depends, HTTPException
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlmodel import Session
import logging

from innovation_hub.auth import login_required, require_capability
from innovation_hub.db import engine
from innovation_hub.flash import flash
from innovation_hub.forms import ChallengeForm, FormValidationError
from innovation_hub.models import Challenge, ChallengeStatus, User
from innovation_hub.permissions import Capability, can
from innovation_hub.services import challenge_browser
from innovation_hub.services.audit import audit_service
from innovation_hub.services.challenge_browser import BrowserState
from innovation_hub.services.submissions import is_accepting_submissions
from innovation_hub.templating import templates

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/challenges", tags=["challenges"])


@router.get("/", response_class=HTMLResponse)
def list_challenges(
    request: Request,
    current_user: User = Depends(login_required),
    search: str = "",
    status: str = "all",
    category: str = "all",
    sort_by: str = "created_at",
    sort_direction: str = "desc",
    page: int = 1,
):
    state = BrowserState.from_params(search, status, category, sort_by, sort_direction, page)
    with Session(engine) as session:
        result = challenge_browser.list_challenges(session, state, viewer=current_user)
        categories = challenge_browser.categories(session)

    return templates.TemplateResponse(request, "challenges/index.html", {
        "user": current_user,
        "state": state,
        "challenges": result,
        "user_submissions": result.user_submissions,
        "categories": categories,
        "statuses": challenge_browser.STATUS_CHOICES,
        "can_create": can(current_user, Capability.CREATE_CHALLENGES),
    })


require_creator = require_capability(
    Capability.CREATE_CHALLENGES, "Only managers, administrators and developers can create challenges",
)


@router.get("/create", response_class=HTMLResponse)
def create_form(request: Request, current_user: User = Depends(require_creator)):
    return templates.TemplateResponse(request, "challenges/create.html", {
        "user": current_user,
        "values": {"status": ChallengeStatus.DRAFT},
        "errors": {},
        "statuses": [s.value for s in ChallengeStatus],
    })


@router.post("/create")
def create_challenge(
    request: Request,
    title: str = Form(""),
    description: str = Form(""),
    category: str = Form(""),
    status: str = Form(ChallengeStatus.DRAFT),
    deadline: str = Form(""),
    prize_description: str = Form(""),
    requirements: str = Form(""),
    current_user: User = Depends(require_creator),
):
    values = {
        "title": title,
        "description": description,
        "category": category,
        "status": status,
        "deadline": deadline,
        "prize_description": prize_description,
        "requirements": requirements,
    }
    try:
        form = ChallengeForm.parse(values)
    except FormValidationError as e:
        return templates.TemplateResponse(request, "challenges/create.html", {
            "user": current_user,
            "values": values,
            "errors": e.errors,
            "statuses": [s.value for s in ChallengeStatus],
        }, status_code=422)

    with Session(engine) as session:
        challenge = Challenge(**form.model_dump(), author_id=current_user.id)
        session.add(challenge)
        session.commit()
        session.refresh(challenge)

    audit_service.record(
        "challenge_creation", "Challenge", challenge.id, None, challenge.model_dump(),
        actor_id=current_user.id, request=request,
    )
    logger.info("Challenge %s created by user %s", challenge.id, current_user.id)
    flash(request, "success", "Challenge created successfully.")
    return RedirectResponse(url=f"/challenges/{challenge.id}", status_code=303)


@router.get("/{challenge_id}", response_class=HTMLResponse)
def challenge_detail(challenge_id: int, request: Request, current_user: User = Depends(login_required)):
    with Session(engine) as session:
        challenge = session.get(Challenge, challenge_id)
        if not challenge:
            raise HTTPException(status_code=404, detail="Challenge not found")
        author = session.get(User, challenge.author_id)
        submissions = challenge_browser.user_submissions(session, current_user, [challenge.id])

    return templates.TemplateResponse(request, "challenges/show.html", {
        "user": current_user,
        "challenge": challenge,
        "author_name": author.display_name if author else "Unknown",
        "my_submission": submissions.get(challenge.id),
        "accepting": is_accepting_submissions(challenge),
        "can_view_submissions": can(current_user, Capability.VIEW_SUBMISSIONS),
    })
