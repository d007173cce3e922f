from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect, Query
from sqlalchemy.orm import Session
from pydantic import BaseModel
from datetime import datetime
import jwt

from gatepass.db.session import get_db
from gatepass.api.deps import get_current_identity, Identity
from gatepass.models.notification import Notification
from gatepass.services.inbox import dispatcher
from gatepass.services.notification_ws import manager
from gatepass.core.security import decode_access_token

router = APIRouter()

class NotificationOut(BaseModel):
    id: int
    type: str
    title: str
    message: str
    created_at: datetime
    read: bool

    class Config:
        from_attributes = True

@router.get("/", response_model=list[NotificationOut])
def list_notifications(db: Session = Depends(get_db), identity: Identity = Depends(get_current_identity)):
    return (
        db.query(Notification)
        .filter(Notification.user_id == identity.account_id)
        .order_by(Notification.created_at.desc(), Notification.id.desc())
        .limit(200)
        .all()
    )

@router.get("/unread-count", response_model=dict)
def unread_count(db: Session = Depends(get_db), identity: Identity = Depends(get_current_identity)):
    count = db.query(Notification).filter(Notification.user_id == identity.account_id, Notification.read.is_(False)).count()
    return {"unread": count}

@router.post("/{notif_id}/read")
def mark_notification(notif_id: int, db: Session = Depends(get_db), identity: Identity = Depends(get_current_identity)):
    n = db.query(Notification).filter(Notification.id == notif_id, Notification.user_id == identity.account_id).first()
    if not n:
        raise HTTPException(status_code=404, detail="Not found")
    n.read = True
    db.commit()
    dispatcher.schedule(manager.send_to_account(identity.account_id, {"type": "notification_read", "data": {"id": notif_id}}))
    return {"status": "ok"}


@router.post("/mark-all-read")
def mark_all_read(db: Session = Depends(get_db), identity: Identity = Depends(get_current_identity)):
    db.query(Notification).filter(
        Notification.user_id == identity.account_id, Notification.read.is_(False)
    ).update({Notification.read: True}, synchronize_session=False)
    db.commit()
    dispatcher.schedule(manager.send_to_account(identity.account_id, {"type": "notification_mark_all", "data": {}}))
    return {"status": "ok"}


@router.websocket("/ws/notifications")
async def websocket_notifications(websocket: WebSocket, token: str = Query(...)):
    """Live notification stream.

    The client passes its access token as ``?token=...``. Server messages look like
    ``{"type": "notification", "data": {NotificationOut}}``.
    """
    try:
        account_id = int(decode_access_token(token).get("sub"))
    except (jwt.PyJWTError, TypeError, ValueError):
        await websocket.close(code=4401)
        return

    await manager.connect(account_id, websocket)
    try:
        while True:
            # Incoming messages are only keep-alive pings
            await websocket.receive_text()
    except WebSocketDisconnect:
        pass
    finally:
        await manager.disconnect(account_id, websocket)
