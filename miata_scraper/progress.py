"""
Session-keyed progress broadcasting.

One ``ProgressChannel`` is built per process and handed to whatever publishes
or observes pipeline stages. Observers are plain callables receiving a
``ProgressEvent``; the HTTP layer uses ``asyncio.Queue.put_nowait``, the CLI a
logging function.
"""
import logging
import threading
from typing import Callable, Dict, List, Optional, Union

from .models import ProgressEvent, Stage

logger = logging.getLogger(__name__)

Observer = Callable[[ProgressEvent], None]


class Subscription:
    """Handle returned by ``ProgressChannel.subscribe``."""

    def __init__(self, channel: "ProgressChannel", session_id: str, observer: Observer):
        self.channel = channel
        self.session_id = session_id
        self.observer = observer
        self.active = True
        # Event delivered as catch-up when subscribing, if any
        self.replayed: Optional[ProgressEvent] = None

    def unsubscribe(self) -> None:
        self.channel.unsubscribe(self)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.unsubscribe()


class ProgressChannel:
    def __init__(self):
        self._lock = threading.RLock()
        self._latest: Dict[str, ProgressEvent] = {}
        self._subscriptions: Dict[str, List[Subscription]] = {}

    def publish(self, session_id: str, stage: Union[Stage, str], detail: str = "") -> ProgressEvent:
        """Record the session's latest event and deliver it to every observer."""
        event = ProgressEvent(stage=Stage(stage), detail=detail)
        with self._lock:
            self._latest[session_id] = event
            for sub in list(self._subscriptions.get(session_id, [])):
                self._deliver(sub, event)
        logger.debug(f"[{session_id}] {event.stage.value}: {detail}")
        return event

    def subscribe(self, session_id: str, observer: Observer) -> Subscription:
        """Register ``observer``; it receives the latest event first, if there is one."""
        sub = Subscription(self, session_id, observer)
        with self._lock:
            self._subscriptions.setdefault(session_id, []).append(sub)
            latest = self._latest.get(session_id)
            if latest is not None:
                sub.replayed = latest
                self._deliver(sub, latest)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            sub.active = False
            subs = self._subscriptions.get(sub.session_id)
            if not subs:
                return
            if sub in subs:
                subs.remove(sub)
            if not subs:
                del self._subscriptions[sub.session_id]

    def latest(self, session_id: str) -> Optional[ProgressEvent]:
        with self._lock:
            return self._latest.get(session_id)

    def observer_count(self, session_id: str) -> int:
        with self._lock:
            return len(self._subscriptions.get(session_id, []))

    def reset(self, session_id: str) -> None:
        """Forget the session's latest event before a new run (observers stay registered)."""
        with self._lock:
            self._latest.pop(session_id, None)

    def _deliver(self, sub: Subscription, event: ProgressEvent) -> None:
        if not sub.active:
            return
        try:
            sub.observer(event)
        except Exception as e:
            # Closed or broken observer: drop it, the others keep receiving
            logger.warning(f"Progress observer for session {sub.session_id} failed, detaching: {e}")
            self.unsubscribe(sub)
