from fastapi import APIRouter, Request, Form, Depends, HTTPException
from fastapi.responses import HTMLResponse, RedirectResponse
from sqlmodel import Session, select
from passlib.context import CryptContext
from jose import JWTError, jwt
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

from innovation_hub.config import SECRET_KEY, ACCESS_TOKEN_EXPIRE_MINUTES
from innovation_hub.db import engine
from innovation_hub.models import User
from innovation_hub.permissions import Capability, Role, can, capabilities
from innovation_hub.templating import templates

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
ALGORITHM = "HS256"
COOKIE_NAME = "access_token"
LOGIN_URL = "/auth/login"

# Seed accounts, one per role
PREDEFINED_USERS = {
    "admin": {"password": "admin", "display_name": "Portal Administrator", "roles": [Role.ADMINISTRATOR]},
    "manager": {"password": "m4n4g3r", "display_name": "Innovation Manager", "roles": [Role.MANAGER]},
    "developer": {"password": "d3v3l0p", "display_name": "Platform Developer", "roles": [Role.DEVELOPER]},
    "reviewer": {"password": "r3v13w", "display_name": "Challenge Reviewer", "roles": [Role.CHALLENGE_REVIEWER]},
    "user01": {"password": "q7k2f", "display_name": "user01", "roles": [Role.USER]},
    "user02": {"password": "d9t4x", "display_name": "user02", "roles": [Role.USER]},
}


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def issue_token(user: User) -> str:
    """Signed cookie value for ``user``.

    The roles claim is informational; permissions are always resolved from
    the stored user so a role change takes effect on the next request.
    """
    expire = datetime.now(timezone.utc) + timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)
    claims = {"sub": user.username, "roles": sorted(user.role_set), "exp": expire}
    return jwt.encode(claims, SECRET_KEY, algorithm=ALGORITHM)


def _username_from_token(token: Optional[str]) -> Optional[str]:
    if not token:
        return None
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[ALGORITHM]).get("sub")
    except JWTError:
        return None


def _load_user(username: str) -> Optional[User]:
    with Session(engine) as session:
        return session.exec(select(User).where(User.username == username)).first()


def authenticate(username: str, password: str) -> Optional[User]:
    user = _load_user(username)
    if user is None or not pwd_context.verify(password, user.password_hash):
        return None
    return user


def get_current_user(request: Request) -> Optional[User]:
    """Signed-in user, or None. Their capabilities are kept on ``request.state``."""
    username = _username_from_token(request.cookies.get(COOKIE_NAME))
    user = _load_user(username) if username else None
    request.state.capabilities = capabilities(user)
    return user


def login_required(current_user: Optional[User] = Depends(get_current_user)) -> User:
    if current_user is None:
        raise HTTPException(status_code=303, headers={"Location": LOGIN_URL})
    return current_user


def require_capability(capability: Capability, detail: str):
    """Dependency that lets through signed-in users holding ``capability``."""
    def dependency(current_user: User = Depends(login_required)) -> User:
        if not can(current_user, capability):
            logger.info("User %s denied %s", current_user.id, capability)
            raise HTTPException(status_code=403, detail=detail)
        return current_user
    return dependency


def init_users():
    with Session(engine) as session:
        for username, data in PREDEFINED_USERS.items():
            if session.exec(select(User).where(User.username == username)).first():
                continue
            user = User(
                username=username,
                password_hash=hash_password(data["password"]),
                display_name=data["display_name"],
                roles=",".join(data["roles"]),
            )
            session.add(user)
            logger.info("Seeded user %s with roles %s", username, user.roles)
        session.commit()


@router.get("/login", response_class=HTMLResponse)
def login_form(request: Request, user: User = Depends(get_current_user)):
    return templates.TemplateResponse(request, "login.html", {"user": user})


@router.post("/login")
def login(request: Request, username: str = Form(...), password: str = Form(...)):
    user = authenticate(username, password)
    if user is None:
        logger.warning("Failed login for %s", username)
        return templates.TemplateResponse(request, "login.html", {
            "user": None,
            "error": "Invalid username or password"
        }, status_code=401)

    response = RedirectResponse(url="/challenges/", status_code=303)
    response.set_cookie(key=COOKIE_NAME, value=issue_token(user), httponly=True, samesite="lax")
    logger.info("User %s signed in with roles %s", user.username, user.roles or "-")
    return response


@router.get("/logout")
def logout():
    response = RedirectResponse(url="/", status_code=303)
    response.delete_cookie(key=COOKIE_NAME)
    return response
