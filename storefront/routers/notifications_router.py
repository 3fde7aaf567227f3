"""
WebSocket surface of the notification engine.

Outgoing messages:
    {"type": "ready", "channel": "business" | "customer" | null}
    {"type": "notifications", "data": [...]}   unread bell snapshot (owners)
    {"type": "effect", "data": {...}}           sound / toast / modal

Incoming messages:
    {"action": "mark_as_read", "order_id": 12}
    {"action": "clear_all"}
"""
import asyncio
import logging

from fastapi import APIRouter, HTTPException, Query, WebSocket, WebSocketDisconnect

from storefront.core import db as db_module
from storefront.realtime import change_feed
from storefront.schemas.notification_schemas import UIEffect
from storefront.services.notifications import BusinessChannel, CustomerChannel, NotificationSession
from storefront.utils.get_user import load_user_from_token

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Notifications"])

POLICY_VIOLATION = 1008


def _channel_name(channel):
    if isinstance(channel, BusinessChannel):
        return "business"
    if isinstance(channel, CustomerChannel):
        return "customer"
    return None


async def _pump(websocket: WebSocket, queue: asyncio.Queue):
    while True:
        message = await queue.get()
        await websocket.send_json(message)


async def _listen(websocket: WebSocket, session: NotificationSession):
    try:
        while True:
            message = await websocket.receive_json()
            action = message.get("action")
            if action == "mark_as_read" and message.get("order_id") is not None:
                session.mark_as_read(int(message["order_id"]))
            elif action == "clear_all":
                session.clear_all_notifications()
            else:
                logger.debug("Ignoring websocket message: %s", message)
    except WebSocketDisconnect:
        pass


@router.websocket("/ws/notifications")
async def notifications_socket(websocket: WebSocket, token: str | None = Query(default=None)):
    if not token:
        await websocket.close(code=POLICY_VIOLATION)
        return

    queue: asyncio.Queue = asyncio.Queue()

    def emit(effect: UIEffect):
        queue.put_nowait({"type": "effect", "data": effect.model_dump(mode="json")})

    def on_notifications(snapshot):
        queue.put_nowait({"type": "notifications", "data": [n.model_dump(mode="json") for n in snapshot]})

    # the DB is only needed to authenticate and pick the channel; release it before streaming
    session_factory = getattr(websocket.app.state, "session_factory", db_module.AsyncSessionLocal)
    async with session_factory() as db:
        try:
            user = await load_user_from_token(db, token)
        except HTTPException:
            await websocket.close(code=POLICY_VIOLATION)
            return
        session = NotificationSession(user, change_feed, emit)
        channel = await session.start(db)
    unsubscribe = session.subscribe_notifications(on_notifications)

    sender = receiver = None
    try:
        await websocket.accept()
        await websocket.send_json({"type": "ready", "channel": _channel_name(channel)})
        sender = asyncio.create_task(_pump(websocket, queue))
        receiver = asyncio.create_task(_listen(websocket, session))
        # whichever side ends first ends the socket
        await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        unsubscribe()
        session.stop()
        tasks = [t for t in (sender, receiver) if t is not None]
        for task in tasks:
            task.cancel()
        results = await asyncio.gather(*tasks, return_exceptions=True)
        for task, result in zip(tasks, results):
            if isinstance(result, Exception):
                logger.error("Notification socket task failed for user %s: %r", user.id, result)
        logger.info("Notification socket closed for user %s", user.id)
