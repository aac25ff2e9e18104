"""HTTP pusher for the Loki push API. One POST per batch, no retry."""

import logging

import requests

logger = logging.getLogger(__name__)


class LokiPusher:
    """Sends compressed PushRequest payloads to a Loki push endpoint."""

    def __init__(self, push_url: str, timeout: float = 10.0,
                 session: requests.Session | None = None):
        self._push_url = push_url
        self._timeout = timeout
        self._session = session or requests.Session()

    @property
    def push_url(self) -> str:
        return self._push_url

    def push(self, payload: bytes) -> bool:
        """POST *payload*. Returns True on a 2xx response, False otherwise."""
        try:
            resp = self._session.post(
                self._push_url,
                data=payload,
                headers={"Content-Type": "application/x-protobuf"},
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            logger.error("Error pushing log to Loki: %s", e)
            return False

        if not 200 <= resp.status_code < 300:
            logger.error(
                "Error pushing log to Loki (%d): %s",
                resp.status_code,
                resp.text[:500],
            )
            return False
        return True

    def close(self):
        self._session.close()
