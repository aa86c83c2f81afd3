"""Single-identifier lookup with bounded retry and response classification."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from ..config import RemoteConfig
from ..errors import MalformedResponse, TransientNetworkError
from ..models import ListingRecord
from .rate_limiter import Clock, RateLimiter, SystemClock
from .retry import RetryPolicy


class ProbeOutcome(str, Enum):
    """Classification of one lookup."""

    ACTIVE = "active"
    INACTIVE = "inactive"
    NOT_FOUND = "not_found"


@dataclass(slots=True)
class ProbeResult:
    """Outcome of probing one identifier.

    ``error`` is set when the lookup failed (retries exhausted or a malformed
    answer) and the result was downgraded to ``NOT_FOUND``.
    """

    item_id: int
    outcome: ProbeOutcome
    record: ListingRecord | None = None
    attempts: int = 1
    error: str | None = None

    @property
    def found(self) -> bool:
        return self.outcome is not ProbeOutcome.NOT_FOUND

    @property
    def active(self) -> bool:
        return self.outcome is ProbeOutcome.ACTIVE

    @property
    def failed(self) -> bool:
        return self.error is not None


def _select_payload(item_id: int, data: Any) -> dict[str, Any]:
    if isinstance(data, list):
        candidates = [entry for entry in data if isinstance(entry, dict)]
        if not candidates:
            raise MalformedResponse(f"empty listing list for id {item_id}")
        for entry in candidates:
            if str(entry.get("id")) == str(item_id):
                return entry
        # A lone entry without an id is taken to answer the requested one.
        if len(candidates) == 1 and "id" not in candidates[0]:
            return candidates[0]
        raise MalformedResponse(f"no listing with id {item_id} in response")
    if not isinstance(data, dict):
        raise MalformedResponse(f"unexpected payload type {type(data).__name__}")
    return data


def classify_response(item_id: int, payload: Any) -> ProbeResult:
    """Map a decoded lookup response to a :class:`ProbeResult`.

    Raises :class:`MalformedResponse` when the body cannot be interpreted.
    """

    if not isinstance(payload, dict):
        raise MalformedResponse("response body is not an object")
    data = payload.get("data")
    if payload.get("status") != "ok" or not data:
        return ProbeResult(item_id, ProbeOutcome.NOT_FOUND)
    entry = dict(_select_payload(item_id, data))
    entry.setdefault("id", item_id)
    try:
        record = ListingRecord.model_validate(entry)
    except ValidationError as exc:
        raise MalformedResponse(str(exc)) from exc
    if record.id != item_id:
        raise MalformedResponse(f"response describes id {record.id}, not {item_id}")
    outcome = ProbeOutcome.ACTIVE if record.is_active else ProbeOutcome.INACTIVE
    return ProbeResult(item_id, outcome, record=record)


class ItemProbe:
    """Look up a single identifier through the shared rate limiter."""

    def __init__(
        self,
        remote: RemoteConfig,
        limiter: RateLimiter,
        retry: RetryPolicy | None = None,
        clock: Clock | None = None,
        client: httpx.Client | None = None,
        logger: structlog.BoundLogger | None = None,
    ) -> None:
        self.remote = remote
        self.limiter = limiter
        self.retry = retry or RetryPolicy()
        self.clock = clock or limiter.clock or SystemClock()
        self.logger = logger or structlog.get_logger("market_sync.probe")
        headers = {"User-Agent": remote.user_agent, "Accept": "application/json"}
        if remote.api_token:
            headers["Authorization"] = f"Bearer {remote.api_token}"
        self._client = client or httpx.Client(
            follow_redirects=True,
            timeout=remote.timeout,
            headers=headers,
        )

    def close(self) -> None:
        self._client.close()

    def probe(self, item_id: int) -> ProbeResult:
        attempt = 0
        last_error: Exception | None = None
        while True:
            attempt += 1
            try:
                payload = self.limiter.execute(lambda: self._request(item_id))
                result = classify_response(item_id, payload)
                result.attempts = attempt
                return result
            except MalformedResponse as exc:
                self.logger.warning("probe_malformed", item_id=item_id, error=str(exc))
                return ProbeResult(
                    item_id, ProbeOutcome.NOT_FOUND, attempts=attempt, error=str(exc)
                )
            except TransientNetworkError as exc:
                last_error = exc
                if not self.retry.should_retry(attempt):
                    break
                delay = self.retry.delay_for(attempt)
                self.logger.debug(
                    "probe_retry", item_id=item_id, attempt=attempt, delay=delay, error=str(exc)
                )
                self.clock.sleep(delay)

        self.logger.warning(
            "probe_exhausted", item_id=item_id, attempts=attempt, error=str(last_error)
        )
        return ProbeResult(
            item_id, ProbeOutcome.NOT_FOUND, attempts=attempt, error=str(last_error)
        )

    # ------------------------------------------------------------------
    def _request(self, item_id: int) -> Any:
        try:
            response = self._client.get(
                self.remote.lookup_url,
                params={"id": item_id},
                timeout=self.remote.timeout,
            )
        except httpx.TransportError as exc:
            raise TransientNetworkError(f"{type(exc).__name__}: {exc}") from exc
        if self._is_transient(response):
            raise TransientNetworkError(f"Unexpected status {response.status_code}")
        if response.status_code == 404:
            return {"status": "not_found", "data": False}
        if response.status_code >= 400:
            raise MalformedResponse(f"Unexpected status {response.status_code}")
        try:
            return response.json()
        except ValueError as exc:
            raise MalformedResponse("response body is not JSON") from exc

    @staticmethod
    def _is_transient(response: Any) -> bool:
        status_code = getattr(response, "status_code", 0)
        if status_code >= 500:
            return True
        if status_code in {408, 429}:
            return True
        return False


__all__ = ["ItemProbe", "ProbeOutcome", "ProbeResult", "classify_response"]
