"""
Real-time entry notifications over WebSocket.

Bridges EventBus entry events to Flask-SocketIO rooms. Clients join a topic
room (``fuel-topups`` or ``mileage``) and receive ``<prefix>-added``,
``<prefix>-updated`` and ``<prefix>-deleted`` messages carrying the entry.
"""

import logging
from typing import Any, Dict

from flask_socketio import emit, join_room, leave_room

from services.events import ENTRY_ADDED, ENTRY_DELETED, ENTRY_UPDATED

logger = logging.getLogger(__name__)

TOPIC_PREFIXES = {
    "fuel-topups": "fuel-topup",
    "mileage": "mileage-entry",
}

EVENT_SUFFIXES = {
    ENTRY_ADDED: "added",
    ENTRY_UPDATED: "updated",
    ENTRY_DELETED: "deleted",
}


def socket_event_name(topic: str, event: str) -> str:
    """
    Example:
        >>> socket_event_name("fuel-topups", "entry_added")
        'fuel-topup-added'
    """
    return f"{TOPIC_PREFIXES.get(topic, topic)}-{EVENT_SUFFIXES[event]}"


class SocketIOBridge:
    """Forwards entry events from the bus to SocketIO rooms."""

    def __init__(self, socketio):
        self.socketio = socketio
        self._handlers = {}

    def _handler(self, event: str):
        def forward(payload: Dict[str, Any]) -> None:
            topic = payload.get("topic")
            name = socket_event_name(topic, event)
            try:
                self.socketio.emit(name, payload.get("entry"), to=topic)
            except Exception as e:
                logger.error(f"Failed to emit {name}: {e}")
                return
            logger.debug(f"Emitted {name} to room {topic}")

        return forward

    def attach(self, bus) -> "SocketIOBridge":
        for event in EVENT_SUFFIXES:
            handler = self._handlers.setdefault(event, self._handler(event))
            bus.subscribe(event, handler)
        return self

    def detach(self, bus) -> None:
        for event, handler in self._handlers.items():
            bus.unsubscribe(event, handler)


def register_handlers(socketio) -> None:
    """Room membership handlers for connected clients."""

    @socketio.on("join")
    def handle_join(data):
        room = (data or {}).get("room")
        if room not in TOPIC_PREFIXES:
            emit("error", {"message": f"Unknown room: {room}"})
            return
        join_room(room)
        emit("joined", {"room": room})

    @socketio.on("leave")
    def handle_leave(data):
        room = (data or {}).get("room")
        if room in TOPIC_PREFIXES:
            leave_room(room)
