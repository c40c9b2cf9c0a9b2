"""One-time messages that survive a redirect.

Messages are kept in the signed session cookie (Starlette's
``SessionMiddleware``) and removed the first time a page reads them.
"""
from typing import List, Tuple

from fastapi import Request

FLASH_KEY = "_flashes"


def flash(request: Request, category: str, message: str) -> None:
    queued = list(request.session.get(FLASH_KEY, []))
    queued.append([category, message])
    request.session[FLASH_KEY] = queued


def get_flashed_messages(request: Request) -> List[Tuple[str, str]]:
    queued = request.session.pop(FLASH_KEY, [])
    return [(category, message) for category, message in queued]
