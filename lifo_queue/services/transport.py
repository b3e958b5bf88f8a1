import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, runtime_checkable

import httpx

from lifo_queue.auth.security import SIGNATURE_HEADER, sign_body
from lifo_queue.domain.signals import Signal
from lifo_queue.settings import settings

logger = logging.getLogger(__name__)

SignalHandler = Callable[[Any], Awaitable[Any]]

@runtime_checkable
class SignalPublisher(Protocol):
    async def publish(self, signal: Signal) -> bool: ...

class InMemoryTransport:
    """
    In-process signal channel.

    publish() only enqueues, so the publisher (typically an activation that
    is about to end) never waits for the subscriber. A delivery loop hands
    each signal to the subscriber once; a failed delivery is logged and
    dropped, never redelivered.
    """
    def __init__(self, maxsize: int = 0, dispatch_retries: int = settings.TRANSPORT_DISPATCH_RETRIES):
        self._queue: asyncio.Queue[Dict[str, Any]] = asyncio.Queue(maxsize=maxsize)
        self._handler: Optional[SignalHandler] = None
        self.dispatch_retries = dispatch_retries
        self.running = False
        self._task: Optional[asyncio.Task] = None

    def subscribe(self, handler: SignalHandler):
        self._handler = handler

    async def publish(self, signal: Signal) -> bool:
        try:
            self._queue.put_nowait(signal.model_dump(mode="json"))
            logger.info("CALL_FUNCTION records=%s", len(signal.records))
            return True
        except asyncio.QueueFull:
            logger.error("CALL_FUNCTION_ERROR error=channel full records=%s", len(signal.records))
            return False

    async def start(self):
        self.running = True
        self._task = asyncio.create_task(self.run_loop())
        logger.info("InMemoryTransport started.")

    async def stop(self):
        self.running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("InMemoryTransport stopped.")

    async def run_loop(self):
        while self.running:
            payload = await self._queue.get()
            try:
                await self.deliver(payload)
            finally:
                self._queue.task_done()

    async def deliver(self, payload: Dict[str, Any]) -> bool:
        if self._handler is None:
            logger.warning("Dropping signal, no subscriber: %s", payload)
            return False

        for attempt in range(self.dispatch_retries + 1):
            try:
                await self._handler(payload)
                return True
            except Exception as e:
                logger.error("Signal delivery failed (attempt %s): %s", attempt + 1, e, exc_info=True)
        return False

    async def join(self):
        """Waits until every published signal has been delivered."""
        await self._queue.join()

    def pending(self) -> int:
        return self._queue.qsize()

class HttpTransport:
    """
    Publishes signals to a trigger endpoint over HTTP.

    Bodies are signed with HMAC-SHA256 when a signing key is configured.
    Publishing is fire-and-forget: errors are logged and reported as False.
    """
    def __init__(
        self,
        url: str,
        signing_key: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.url = url
        self.signing_key = signing_key
        self.client = client or httpx.AsyncClient(timeout=timeout)

    @staticmethod
    def _serialize_body(json_body: Dict[str, Any]) -> bytes:
        # Stable encoding keeps signatures deterministic and payloads compact.
        return json.dumps(json_body, sort_keys=True, separators=(",", ":")).encode("utf-8")

    def _build_headers(self, body: bytes) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.signing_key:
            headers[SIGNATURE_HEADER] = sign_body(self.signing_key, body)
        return headers

    async def publish(self, signal: Signal) -> bool:
        content = self._serialize_body(signal.model_dump(mode="json"))
        try:
            resp = await self.client.post(self.url, content=content, headers=self._build_headers(content))
            resp.raise_for_status()
            logger.info("CALL_FUNCTION url=%s records=%s", self.url, len(signal.records))
            return True
        except httpx.HTTPError as e:
            logger.error("CALL_FUNCTION_ERROR url=%s error=%s", self.url, e)
            return False

    async def close(self):
        await self.client.aclose()

def build_transport() -> SignalPublisher:
    if settings.TRANSPORT_URL:
        return HttpTransport(settings.TRANSPORT_URL, signing_key=settings.SIGNAL_SIGNING_KEY)
    return InMemoryTransport()
