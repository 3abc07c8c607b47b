"""Blocking request/response bridge over the callback-driven transport.

The transport answers confirmed requests through a completion handler. Each
call here owns a single-shot slot: the first outcome wins, later deliveries
are dropped. Callers wanting parallel requests issue them from their own
threads; the bridge does not serialize anything.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any

from bacnode.core.errors import NotFoundError, NotInitializedError
from bacnode.core.local_device import LocalDeviceManager
from bacnode.core.model import Abort, Error, Outcome, Reject, Success, Timeout
from bacnode.transports.base import AbortPDU, ErrorPDU, FailurePDU, RejectPDU

LOGGER = logging.getLogger(__name__)

_GRACE_MS = 1000


class PendingRequest:
    """Completion handler delivering exactly one outcome."""

    def __init__(self, bridge: RequestBridge, description: str) -> None:
        self._bridge = bridge
        self._description = description
        self._lock = threading.Lock()
        self.future: Future[Outcome] = Future()

    def success(self, ack: Any) -> None:
        self._bridge.last_response = ack
        self.deliver(Success(True if ack is None else ack))

    def fail(self, pdu: FailurePDU) -> None:
        self._bridge.last_response = pdu
        self.deliver(classify_failure(pdu))

    def ex(self, exc: BaseException) -> None:
        self._bridge.last_response = exc
        self.deliver(Timeout(exc))

    def deliver(self, outcome: Outcome) -> bool:
        with self._lock:
            if self.future.done():
                LOGGER.debug("Dropping late outcome for %s: %r", self._description, outcome)
                return False
            self.future.set_result(outcome)
            return True


def classify_failure(pdu: FailurePDU) -> Outcome:
    if isinstance(pdu, AbortPDU):
        return Abort(pdu.reason)
    if isinstance(pdu, RejectPDU):
        return Reject(pdu.reason)
    if isinstance(pdu, ErrorPDU):
        return Error(pdu.error_class, pdu.error_code)
    raise TypeError(f"Unexpected failure PDU {pdu!r}")


class RequestBridge:
    def __init__(self, local: LocalDeviceManager) -> None:
        self._local = local
        self.last_response: Any = None

    def send_and_wait(self, device_id: int, request: Any, timeout_ms: int | None = None) -> Outcome:
        """Send a confirmed request and block until its single outcome arrives.

        The wait is bounded by the transport's own timeout and retries plus a
        grace period; if that bound passes first, a `Timeout` is delivered
        through the same slot.
        """
        if not self._local.is_initialized:
            raise NotInitializedError("Can't send request while the local device isn't initialized.")
        device = self._local.device
        remote = device.get_remote_device(device_id)
        if remote is None:
            raise NotFoundError(f"Unknown remote device {device_id}. Run discovery first.")

        pending = PendingRequest(self, f"{type(request).__name__} to {device_id}")
        try:
            device.send(remote, request, pending)
        except OSError as exc:
            LOGGER.warning("Could not send %s to device %s: %s", type(request).__name__, device_id, exc)
            pending.ex(exc)

        wait_s = self._wait_bound_ms(timeout_ms) / 1000
        try:
            return pending.future.result(timeout=wait_s)
        except FutureTimeoutError:
            LOGGER.warning("No outcome from device %s after %.1fs", device_id, wait_s)
            pending.deliver(Timeout())
            return pending.future.result()

    def _wait_bound_ms(self, timeout_ms: int | None) -> int:
        config = self._local.config
        device = self._local.device
        per_attempt = timeout_ms or (config.apdu_timeout if config else None) or device.timeout
        return per_attempt * (device.retries + 1) + _GRACE_MS
