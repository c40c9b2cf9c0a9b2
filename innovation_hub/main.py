from fastapi import FastAPI, Request, Depends
from fastapi.staticfiles import StaticFiles
from fastapi.responses import HTMLResponse, RedirectResponse
from starlette.middleware.sessions import SessionMiddleware
import logging

from innovation_hub import auth
from innovation_hub.config import BASE_DIR, LOG_LEVEL, SECRET_KEY, STORAGE_DIR
from innovation_hub.db import init_db
from innovation_hub.models import User
from innovation_hub.routers import challenges, notifications, submissions

logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

STORAGE_DIR.mkdir(parents=True, exist_ok=True)

app = FastAPI(title="Innovation Challenges Hub")
app.add_middleware(SessionMiddleware, secret_key=SECRET_KEY, same_site="lax")
app.mount("/static", StaticFiles(directory=str(BASE_DIR / "innovation_hub" / "static")), name="static")

app.include_router(auth.router)
app.include_router(challenges.router)
app.include_router(submissions.router)
app.include_router(notifications.router)


@app.on_event("startup")
async def on_startup():
    init_db()
    auth.init_users()


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return HTMLResponse("Internal Server Error", status_code=500)


@app.get("/", response_class=HTMLResponse)
async def index(request: Request, user: User = Depends(auth.get_current_user)):
    if not user:
        return RedirectResponse(url="/auth/login", status_code=303)
    return RedirectResponse(url="/challenges/", status_code=303)
