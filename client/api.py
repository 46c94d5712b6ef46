import logging
from typing import Optional

import requests

from client.session_cache import ClientSessionCache, SessionEnvelope

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10


class LoginFailed(Exception):
    pass


class SessionExpired(Exception):
    """The server no longer accepts the stored session; the user must log in again."""


class LmsClient:
    """
    Talks to the backend API only. There is no direct-store fallback: every
    read goes through the server's authorization gate and audit trail.
    """

    def __init__(self, base_url: str, cache: Optional[ClientSessionCache] = None, http=None, timeout=DEFAULT_TIMEOUT):
        self.base_url = base_url.rstrip("/")
        self.http = http or requests.Session()
        self.timeout = timeout
        self.cache = cache or ClientSessionCache(on_logout=self._notify_server_logout)

    def _url(self, path: str) -> str:
        return f"{self.base_url}{path}"

    @staticmethod
    def _auth(envelope: SessionEnvelope) -> dict:
        return {"Authorization": f"Bearer {envelope.token}"}

    def login(self, emp_id: str, password: str) -> SessionEnvelope:
        resp = self.http.post(
            self._url("/api/auth/login"),
            json={"emp_id": emp_id, "password": password},
            timeout=self.timeout,
        )
        if resp.status_code != 200:
            try:
                message = resp.json().get("message")
            except ValueError:
                message = None
            raise LoginFailed(message or "Login failed")

        envelope = SessionEnvelope.from_login_response(resp.json())
        self.cache.establish(envelope)
        logger.info("Logged in as %s (session %s)", envelope.employee.get("emp_id"), envelope.session_id)
        return envelope

    def logout(self, reason: str = "manual") -> None:
        self.cache.clear(reason)

    def _notify_server_logout(self, envelope: SessionEnvelope, reason: str) -> None:
        try:
            self.http.post(
                self._url("/api/auth/logout"),
                json={"reason": reason},
                headers=self._auth(envelope),
                timeout=self.timeout,
            )
        except requests.RequestException:
            # the server session still ends on its own idle/absolute window
            logger.warning("Logout notification for session %s failed", envelope.session_id, exc_info=True)

    def validate(self) -> bool:
        envelope = self.cache.get()
        if envelope is None:
            return False
        try:
            resp = self.http.get(
                self._url("/api/auth/validate"),
                headers=self._auth(envelope),
                timeout=self.timeout,
            )
        except requests.RequestException:
            logger.warning("Session validation request failed", exc_info=True)
            return False

        if resp.status_code != 200:
            self.cache.clear("timeout")
            return False
        return True

    def request(self, method: str, path: str, privileged: bool = False, **kwargs):
        """
        Authenticated call. Privileged navigation re-validates with the
        server first. Raises SessionExpired when there is no usable session.
        """
        if privileged and not self.validate():
            raise SessionExpired()

        envelope = self.cache.get()
        if envelope is None:
            raise SessionExpired()

        headers = dict(kwargs.pop("headers", None) or {}, **self._auth(envelope))
        kwargs.setdefault("timeout", self.timeout)
        resp = self.http.request(method, self._url(path), headers=headers, **kwargs)
        if resp.status_code == 401:
            self.cache.clear("timeout")
            raise SessionExpired()
        return resp
