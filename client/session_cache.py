"""Local mirror of the server session, with its own idle timer.

The cache re-derives validity on every read using the same policy as the
server, so the UI can drop an expired session without a round trip. It is
not a security boundary: the server session manager stays authoritative.
"""

import json
import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, MutableMapping, Optional

from security.policy import IDLE_TIMEOUT_SECONDS, SessionState, evaluate
from utils.timeutil import isoformat_utc, parse_iso, utcnow

logger = logging.getLogger(__name__)

STORAGE_KEY = "act_university_session"


class InteractionSignal(str, Enum):
    POINTER_PRESS = "mousedown"
    KEY_PRESS = "keydown"
    SCROLL = "scroll"
    TOUCH = "touchstart"


DEFAULT_SIGNALS = frozenset(InteractionSignal)


@dataclass
class SessionEnvelope:
    employee: Dict[str, Any]
    session_id: int
    token: str
    expires_at: Any
    last_activity_at: Any = field(default_factory=utcnow)

    @classmethod
    def from_login_response(cls, body: dict) -> "SessionEnvelope":
        return cls(
            employee=body["employee"],
            session_id=body["sessionId"],
            token=body["token"],
            expires_at=parse_iso(body["expiresAt"]),
            last_activity_at=parse_iso(body["lastActivityAt"]),
        )

    def to_json(self) -> str:
        return json.dumps({
            "employee": self.employee,
            "sessionId": self.session_id,
            "token": self.token,
            "expiresAt": isoformat_utc(self.expires_at),
            "lastActivityAt": isoformat_utc(self.last_activity_at),
        })

    @classmethod
    def from_json(cls, raw: str) -> "SessionEnvelope":
        return cls.from_login_response(json.loads(raw))

    @property
    def is_admin(self) -> bool:
        return self.employee.get("role") == "admin"


class ClientSessionCache:
    """
    Owns the stored envelope and exactly one idle timer. Establishing a new
    session replaces the previous timer; clearing always cancels it.

    `on_logout(envelope, reason)` is called once whenever the cache drops a
    session on its own (idle timer, expired on read) or through clear(). It
    runs after the lock is released, so a slow callback never blocks reads
    or the timer thread.
    """

    def __init__(
        self,
        storage: Optional[MutableMapping[str, str]] = None,
        on_logout: Optional[Callable[[SessionEnvelope, str], None]] = None,
        clock: Callable[[], Any] = utcnow,
        timer_factory: Callable[..., Any] = threading.Timer,
        signals=DEFAULT_SIGNALS,
    ):
        self._storage = storage if storage is not None else {}
        self._on_logout = on_logout
        self._clock = clock
        self._timer_factory = timer_factory
        self._signals = frozenset(InteractionSignal(s) for s in signals)
        self._timer = None
        self._lock = threading.RLock()

    def establish(self, envelope: SessionEnvelope) -> None:
        with self._lock:
            self._cancel_timer()
            self._persist(envelope)
            self._start_timer()

    def get(self) -> Optional[SessionEnvelope]:
        with self._lock:
            envelope, dropped = self._current()
        self._notify(dropped, "timeout")
        return envelope

    def record_interaction(self, signal) -> bool:
        """Stamps activity for a configured signal. Returns False when ignored."""
        try:
            signal = InteractionSignal(signal)
        except ValueError:
            return False
        if signal not in self._signals:
            return False

        with self._lock:
            envelope, dropped = self._current()
            if envelope is not None:
                envelope.last_activity_at = self._clock()
                self._persist(envelope)
                self._cancel_timer()
                self._start_timer()
        self._notify(dropped, "timeout")
        return envelope is not None

    def clear(self, reason: str = "manual") -> None:
        with self._lock:
            envelope = self._load()
            self._discard()
        self._notify(envelope, reason)

    @property
    def timer_active(self) -> bool:
        return self._timer is not None

    def _current(self):
        """
        Caller holds the lock. Returns (envelope, dropped): the live envelope,
        or the one just discarded because its window elapsed.
        """
        envelope = self._load()
        if envelope is None:
            return None, None

        state = evaluate(envelope.expires_at, envelope.last_activity_at, self._clock())
        if state != SessionState.ACTIVE:
            logger.info("Local session %s no longer valid: %s", envelope.session_id, state.value)
            self._discard()
            return None, envelope
        return envelope, None

    def _discard(self) -> None:
        self._cancel_timer()
        self._storage.pop(STORAGE_KEY, None)

    def _notify(self, envelope, reason: str) -> None:
        if envelope is not None and self._on_logout is not None:
            self._on_logout(envelope, reason)

    def _on_idle(self) -> None:
        with self._lock:
            self._timer = None
            envelope = self._load()
            if envelope is not None:
                logger.info("Idle timer fired for session %s", envelope.session_id)
                self._discard()
        self._notify(envelope, "timeout")

    def _start_timer(self) -> None:
        timer = self._timer_factory(IDLE_TIMEOUT_SECONDS, self._on_idle)
        timer.daemon = True
        timer.start()
        self._timer = timer

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _persist(self, envelope: SessionEnvelope) -> None:
        self._storage[STORAGE_KEY] = envelope.to_json()

    def _load(self) -> Optional[SessionEnvelope]:
        raw = self._storage.get(STORAGE_KEY)
        if not raw:
            return None
        try:
            return SessionEnvelope.from_json(raw)
        except (ValueError, KeyError, TypeError):
            logger.warning("Discarding unreadable stored session")
            self._storage.pop(STORAGE_KEY, None)
            return None
