from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import httpx

from .errors import CreoleSDKError, DecodeError, RequestTimeoutError, ServiceError, TransportError
from .stats import HttpEvent, RollingStats

logger = logging.getLogger(__name__)

EventHook = Callable[[HttpEvent], None]
SleepFn = Callable[[float], Awaitable[None]]
# (filename, content, content_type), as accepted by httpx ``files=``
FileField = Tuple[str, bytes, str]


@dataclass(frozen=True)
class RequestDescriptor:
    """
    Everything needed to run one logical request.

    ``retries_left`` is the remaining retry budget; the invoker derives a new
    descriptor with the budget decremented for each retry.
    """
    url: str
    method: str = "GET"
    headers: Dict[str, str] = field(default_factory=dict)
    json_body: Optional[Any] = None
    files: Optional[Dict[str, FileField]] = None
    data: Optional[Dict[str, str]] = None
    expect: str = "json"  # "json" | "bytes"
    timeout_s: float = 30.0
    retries_left: int = 0


def _service_error(r: httpx.Response, url: str) -> ServiceError:
    payload: Optional[Dict[str, Any]] = None
    message: Optional[str] = None
    try:
        body = r.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        payload = body
        err = body.get("error") or body.get("detail") or body.get("message")
        if isinstance(err, dict):
            err = err.get("message")
        if isinstance(err, str) and err:
            message = err
    if not message:
        message = f"HTTP {r.status_code}: {r.reason_phrase}"
    return ServiceError(r.status_code, message, url=url, payload=payload)


class Invoker:
    """
    Runs requests under a per-attempt deadline with fixed-backoff retries.

    Every failure consumes one unit of retry budget (timeouts, network errors
    and non-2xx responses alike) except ``DecodeError``, which is raised at
    once because the round-trip itself succeeded. Cancellation coming from the
    caller is never retried.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        backoff_s: float = 1.0,
        on_event: Optional[EventHook] = None,
        sleep: SleepFn = asyncio.sleep,
        stats: Optional[RollingStats] = None,
    ):
        self.client = client
        self.backoff_s = backoff_s
        self.on_event = on_event
        self.stats = stats or RollingStats()
        self._sleep = sleep

    async def invoke(self, desc: RequestDescriptor) -> Any:
        attempt = 0
        while True:
            attempt += 1
            try:
                return await self._attempt(desc, attempt)
            except DecodeError:
                raise
            except CreoleSDKError as e:
                if desc.retries_left <= 0:
                    logger.warning("%s %s failed after %d attempt(s): %s", desc.method, desc.url, attempt, e)
                    raise
                logger.warning(
                    "%s %s attempt %d failed (%s); retrying in %.2fs (%d left)",
                    desc.method, desc.url, attempt, e, self.backoff_s, desc.retries_left,
                )
            await self._sleep(self.backoff_s)
            desc = replace(desc, retries_left=desc.retries_left - 1)

    async def _attempt(self, desc: RequestDescriptor, attempt: int) -> Any:
        t0 = time.perf_counter()
        try:
            r = await asyncio.wait_for(self._send(desc), timeout=desc.timeout_s)
        except (asyncio.TimeoutError, httpx.TimeoutException) as e:
            self._emit(desc, 0, time.perf_counter() - t0, 0, attempt)
            raise RequestTimeoutError(desc.url, desc.timeout_s) from e
        except httpx.HTTPError as e:
            self._emit(desc, 0, time.perf_counter() - t0, 0, attempt)
            raise TransportError(str(e) or e.__class__.__name__, url=desc.url) from e

        dur = time.perf_counter() - t0
        self._emit(desc, r.status_code, dur, len(r.content), attempt)

        if not r.is_success:
            raise _service_error(r, desc.url)

        if desc.expect == "bytes":
            payload: Any = r.content
        else:
            try:
                payload = r.json()
            except ValueError as e:
                raise DecodeError(f"Invalid JSON from {desc.url}: {e}") from e

        self.stats.add(dur * 1000.0)
        return payload

    async def _send(self, desc: RequestDescriptor) -> httpx.Response:
        # The deadline is owned by wait_for; disable httpx's own timeouts.
        return await self.client.request(
            desc.method,
            desc.url,
            headers=desc.headers,
            json=desc.json_body,
            files=desc.files,
            data=desc.data,
            timeout=None,
        )

    def _emit(self, desc: RequestDescriptor, status: int, duration_s: float, nbytes: int, attempt: int) -> None:
        if not self.on_event:
            return
        try:
            self.on_event(HttpEvent(desc.method, desc.url, status, duration_s, nbytes, attempt))
        except Exception:
            # Never break the main flow on telemetry errors
            logger.warning("on_event hook raised", exc_info=True)
