"""
HTTP Test Factory

Builds httpx clients backed by ``httpx.MockTransport`` so the Drive and OAuth
code paths run without a network.
"""

from collections.abc import Callable, Iterable
from typing import Any

import httpx


class ScriptedTransport:
    """
    Replays a fixed sequence of outcomes, one per request.

    Each outcome is a status code, an ``httpx.Response``, a ``(status, json)``
    pair or an exception instance (raised with the request attached when it
    is an ``httpx.TransportError`` class instance).
    """

    def __init__(self, outcomes: Iterable[Any]):
        self._outcomes = list(outcomes)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests), len(self._outcomes)) - 1
        outcome = self._outcomes[index]

        if isinstance(outcome, Exception):
            raise outcome
        if isinstance(outcome, httpx.Response):
            return outcome
        if isinstance(outcome, tuple):
            status, payload = outcome
            return httpx.Response(status, json=payload)
        return httpx.Response(outcome, json={})


class HttpTestFactory:
    """Factory for creating HTTP test objects."""

    @staticmethod
    def client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        """Async client whose every request goes to ``handler``."""
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    @staticmethod
    def scripted(*outcomes: Any) -> tuple[httpx.AsyncClient, ScriptedTransport]:
        """Client replaying ``outcomes`` in order (the last one repeats)."""
        script = ScriptedTransport(outcomes)
        return httpx.AsyncClient(transport=httpx.MockTransport(script)), script

    @staticmethod
    def unreachable() -> httpx.AsyncClient:
        """Client that fails the test if any request is sent."""

        def _handler(request: httpx.Request) -> httpx.Response:
            raise AssertionError(f"Unexpected HTTP request: {request.method} {request.url}")

        return httpx.AsyncClient(transport=httpx.MockTransport(_handler))

    @staticmethod
    def drive_file(file_id: str, name: str, folder: bool = False, **extra: Any) -> dict[str, Any]:
        """One Drive v3 file resource."""
        mime = "application/vnd.google-apps.folder" if folder else "text/plain"
        return {"id": file_id, "name": name, "mimeType": mime, **extra}
