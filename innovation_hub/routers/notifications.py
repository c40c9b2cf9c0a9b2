from fastapi import APIRouter, Request, Depends, HTTPException
from fastapi.responses import HTMLResponse, RedirectResponse

from innovation_hub.auth import login_required
from innovation_hub.models import User
from innovation_hub.services.notifications import notification_service
from innovation_hub.templating import templates

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/", response_class=HTMLResponse)
def list_notifications(request: Request, current_user: User = Depends(login_required)):
    return templates.TemplateResponse(request, "notifications.html", {
        "user": current_user,
        "notifications": notification_service.for_user(current_user),
        "unread": notification_service.unread_count(current_user),
    })


@router.post("/{notification_id}/read")
def mark_read(notification_id: int, current_user: User = Depends(login_required)):
    if not notification_service.mark_as_read(current_user, notification_id):
        raise HTTPException(status_code=404, detail="Notification not found")
    return RedirectResponse(url="/notifications/", status_code=303)
