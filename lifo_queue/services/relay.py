import logging
from typing import Any, Awaitable, Protocol

from pydantic import ValidationError

from lifo_queue.api.v1.metrics import SIGNALS_TOTAL
from lifo_queue.domain.signals import Signal

logger = logging.getLogger(__name__)

class Dispatcher(Protocol):
    def dispatch(self, reason: str = ...) -> Awaitable[bool]: ...

class TriggerRelay:
    """
    Turns wake-up signals into worker invocations.

    One invocation per signal that carries an INSERT notification or a
    hand-off; everything else is ignored. Signals are never merged, so a
    burst of N signals yields N dispatches. Keeping activations from
    overlapping is the activation layer's job.
    """
    def __init__(self, dispatcher: Dispatcher):
        self.dispatcher = dispatcher

    async def handle(self, raw: Any) -> bool:
        try:
            signal = raw if isinstance(raw, Signal) else Signal.model_validate(raw)
        except ValidationError as e:
            SIGNALS_TOTAL.labels(action="invalid").inc()
            logger.info("TRIGGER_SKIP_PROCESS_TASKS reason=invalid errors=%s", e.error_count())
            return False

        has_handoff = signal.has_handoff
        has_insert = signal.has_insert

        if not (has_handoff or has_insert):
            SIGNALS_TOTAL.labels(action="skipped").inc()
            logger.info(
                "TRIGGER_SKIP_PROCESS_TASKS records=%s has_handoff=%s has_insert=%s",
                len(signal.records), has_handoff, has_insert,
            )
            return False

        try:
            dispatched = await self.dispatcher.dispatch(reason="handoff" if has_handoff else "insert")
        except Exception as e:
            logger.error("TRIGGER_ERROR error=%s", e, exc_info=True)
            return False

        SIGNALS_TOTAL.labels(action="dispatched").inc()
        logger.info(
            "TRIGGER_CALL_PROCESS_TASKS records=%s has_handoff=%s has_insert=%s dispatched=%s",
            len(signal.records), has_handoff, has_insert, dispatched,
        )
        return dispatched
