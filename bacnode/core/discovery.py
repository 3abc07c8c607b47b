"""WhoIs/WhoHas broadcasts and remote-device table inspection."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from concurrent.futures import Future, ThreadPoolExecutor

from bacnode.core.errors import NotFoundError
from bacnode.core.local_device import LocalDeviceManager, normalize_identifier
from bacnode.core.model import MAX_INSTANCE, WHO_IS_HIGH_LIMIT, ObjectIdentifier, RemoteDevice
from bacnode.core.requests import WhoHas, WhoIs

LOGGER = logging.getLogger(__name__)

DEFAULT_SETTLE_S = 0.5
DEFAULT_ATTEMPTS = 5


class DiscoveryService:
    def __init__(
        self,
        local: LocalDeviceManager,
        *,
        settle_s: float = DEFAULT_SETTLE_S,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._local = local
        self._settle_s = settle_s
        self._sleep = sleep
        self._executor: ThreadPoolExecutor | None = None

    def send_who_is(
        self,
        min_range: int | None = None,
        max_range: int | None = None,
        *,
        global_broadcast: bool = False,
    ) -> None:
        """Broadcast a WhoIs. Answers land in the transport's remote-device table."""
        if min_range is not None or max_range is not None:
            request = WhoIs(
                low_limit=0 if min_range is None else min_range,
                high_limit=WHO_IS_HIGH_LIMIT if max_range is None else max_range,
            )
        else:
            request = WhoIs()
        self._broadcast(request, global_broadcast)

    def send_who_has(
        self,
        object_identifier_or_name: ObjectIdentifier | str,
        min_range: int = 0,
        max_range: int = MAX_INSTANCE,
        *,
        global_broadcast: bool = True,
    ) -> None:
        if isinstance(object_identifier_or_name, str):
            request = WhoHas(min_range, max_range, object_name=object_identifier_or_name)
        else:
            request = WhoHas(
                min_range,
                max_range,
                object_identifier=normalize_identifier(object_identifier_or_name),
            )
        self._broadcast(request, global_broadcast)

    def _broadcast(self, request: WhoIs | WhoHas, global_broadcast: bool) -> None:
        device = self._local.device
        if global_broadcast:
            device.send_global_broadcast(request)
        else:
            device.send_broadcast(self._local.config.destination_port, request)
        LOGGER.debug("Broadcast %r", request)

    def find_devices_and_extended_info(
        self,
        min_range: int | None = None,
        max_range: int | None = None,
    ) -> set[int]:
        """Send a WhoIs and fetch extended information for every known device.

        Discovery has no completion signal, so this sleeps a fixed settle
        interval before reading the remote-device table.
        """
        self.send_who_is(min_range, max_range)
        self._sleep(self._settle_s)
        device = self._local.device
        remotes = device.get_remote_devices()
        for remote in remotes:
            device.get_extended_device_information(remote)
        return {remote.instance_number for remote in remotes}

    def bootstrap(self, attempts: int = DEFAULT_ATTEMPTS) -> set[int]:
        found: set[int] = set()
        for attempt in range(1, attempts + 1):
            found = self.find_devices_and_extended_info()
            if found:
                LOGGER.info("Discovered %d device(s) on attempt %d", len(found), attempt)
                break
        else:
            LOGGER.info("No remote devices answered after %d attempt(s)", attempts)
        return found

    def start_background_bootstrap(self, attempts: int = DEFAULT_ATTEMPTS) -> Future[set[int]]:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="bacnode-discovery")
        future = self._executor.submit(self.bootstrap, attempts)
        future.add_done_callback(_log_bootstrap_failure)
        return future

    def shutdown(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def remote_devices(self) -> list[int]:
        return [remote.instance_number for remote in self._local.device.get_remote_devices()]

    def remote_device(self, device_id: int) -> RemoteDevice:
        remote = self._local.device.get_remote_device(device_id)
        if remote is None:
            raise NotFoundError(f"Unknown remote device {device_id}")
        return remote

    def remote_devices_and_names(self) -> list[tuple[int, str | None]]:
        return [(remote.instance_number, remote.name) for remote in self._local.device.get_remote_devices()]


def _log_bootstrap_failure(future: Future[set[int]]) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        LOGGER.error("Background discovery failed: %s", exc, exc_info=exc)
