"""
HTTP client for a Presidio analyzer service.

The remote layer is optional. Any failure to get a usable answer from the
service (transport error, timeout, non-2xx status, malformed body) is
raised as RemoteServiceError so the HybridDetector can log it and fall
back. There is no retry.

Wire format:
    POST /analyze {"text", "language", "score_threshold", "entities"?}
    -> [{"entity_type": str, "start": int, "end": int, "score": float}, ...]
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from lexredact.exceptions import RemoteServiceError

logger = logging.getLogger(__name__)

DEFAULT_URL = "http://localhost:5002"
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_CONNECT_TIMEOUT_SECONDS = 5.0
DEFAULT_SCORE_THRESHOLD = 0.5


@dataclass(frozen=True)
class RemoteEntity:
    """One analyzer result: offsets, remote type name and score. No text."""

    entity_type: str
    start: int
    end: int
    score: float

    @classmethod
    def from_json(cls, item: dict) -> RemoteEntity:
        return cls(
            entity_type=str(item["entity_type"]),
            start=int(item["start"]),
            end=int(item["end"]),
            score=float(item["score"]),
        )


class PresidioClient:
    """Synchronous analyzer client with explicit connect and request timeouts.

    Args:
        base_url: Service root, e.g. "http://localhost:5002".
        connect_timeout: Seconds allowed to establish a connection.
        timeout: Overall per-request timeout in seconds.
        score_threshold: Default minimum score sent with each request.
        enabled: A disabled client is never called by the HybridDetector.
        transport: Optional httpx transport, used to stub the service in tests.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_URL,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT_SECONDS,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        score_threshold: float = DEFAULT_SCORE_THRESHOLD,
        enabled: bool = True,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.score_threshold = score_threshold
        self.enabled = enabled
        self._client = httpx.Client(
            base_url=self.base_url,
            timeout=httpx.Timeout(timeout, connect=connect_timeout),
            transport=transport,
        )

    def __repr__(self) -> str:
        return f"PresidioClient(base_url={self.base_url!r}, enabled={self.enabled})"

    def __enter__(self) -> PresidioClient:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def close(self) -> None:
        self._client.close()

    def is_enabled(self) -> bool:
        return self.enabled

    def analyze(
        self,
        text: str,
        language: str = "en",
        entities: list[str] | None = None,
        score_threshold: float | None = None,
    ) -> list[RemoteEntity]:
        """Analyze text and return the raw remote results.

        Raises:
            RemoteServiceError: On transport failure, timeout, non-2xx
                status or an unparseable body.
        """
        payload: dict = {
            "text": text,
            "language": language,
            "score_threshold": (
                self.score_threshold if score_threshold is None else score_threshold
            ),
        }
        if entities:
            payload["entities"] = entities

        response = self._request("POST", "/analyze", json=payload)
        if not response.content.strip():
            return []

        try:
            body = response.json()
            results = [RemoteEntity.from_json(item) for item in body]
        except (ValueError, TypeError, KeyError) as exc:
            raise RemoteServiceError(f"Malformed analyzer response: {exc}") from exc

        logger.debug("Remote analyzer returned %d results", len(results))
        return results

    def health_check(self) -> bool:
        """True if the service answers GET /health with a 2xx status."""
        try:
            self._request("GET", "/health")
        except RemoteServiceError as exc:
            logger.debug("Remote analyzer health check failed: %s", exc)
            return False
        return True

    def supported_entities(self, language: str = "en") -> list[str]:
        response = self._request(
            "GET", "/supportedentities", params={"language": language}
        )
        try:
            return [str(name) for name in response.json()]
        except (ValueError, TypeError) as exc:
            raise RemoteServiceError(
                f"Malformed supported entities response: {exc}"
            ) from exc

    def _request(self, method: str, path: str, **kwargs) -> httpx.Response:
        try:
            response = self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise RemoteServiceError(f"{method} {path} timed out") from exc
        except httpx.HTTPStatusError as exc:
            raise RemoteServiceError(
                f"{method} {path} returned HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise RemoteServiceError(f"{method} {path} failed: {exc}") from exc
        return response
