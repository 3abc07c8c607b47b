"""Service layer used by the public client and the CLI.

A `NodeService` is the context object for one BACnet node: it owns the local
device manager and wires the bridge, discovery, remote accessor and backup
components to it. Nothing is shared between two services.
"""

from __future__ import annotations

import importlib
from concurrent.futures import Future
from pathlib import Path

from bacnode.core.backup import BackupRestore, BackupStore
from bacnode.core.bridge import RequestBridge
from bacnode.core.discovery import DEFAULT_ATTEMPTS, DEFAULT_SETTLE_S, DiscoveryService
from bacnode.core.errors import TransportError
from bacnode.core.local_device import LocalDeviceManager
from bacnode.core.model import ConfigBackup
from bacnode.core.remote import RemoteObjectAccessor
from bacnode.transports.base import TransportFactory


class NodeService:
    def __init__(
        self,
        *,
        transport_factory: TransportFactory | None = None,
        backup_path: Path | None = None,
        settle_s: float = DEFAULT_SETTLE_S,
    ) -> None:
        self.local = LocalDeviceManager(transport_factory or default_transport_factory())
        self.bridge = RequestBridge(self.local)
        self.discovery = DiscoveryService(self.local, settle_s=settle_s)
        self.remote = RemoteObjectAccessor(self.bridge)
        self.backups = BackupRestore(self.local, self.discovery, BackupStore(backup_path))

    def boot(self, attempts: int = DEFAULT_ATTEMPTS) -> Future[set[int]]:
        return self.backups.boot(attempts)

    def save(self) -> ConfigBackup:
        return self.backups.save()

    def load(self) -> ConfigBackup:
        return self.backups.load()

    def close(self) -> None:
        self.discovery.shutdown()
        self.local.terminate()

    def __enter__(self) -> NodeService:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


def load_transport_factory(spec: str) -> TransportFactory:
    """Resolve `module:callable`, where the callable returns a transport factory."""
    module_name, sep, attr = spec.partition(":")
    if not sep or not module_name or not attr:
        raise TransportError(f"Transport must be given as 'module:callable', got '{spec}'")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise TransportError(f"Could not import transport module '{module_name}': {exc}") from exc
    provider = getattr(module, attr, None)
    if not callable(provider):
        raise TransportError(f"Transport provider '{spec}' is not callable")
    return provider()


def default_transport_factory() -> TransportFactory:
    """BACnet/IP through bac-py, imported on first use."""
    try:
        from bacnode.transports.bacpy import bacpy_factory
    except ImportError as exc:
        raise TransportError(
            f"The BACnet/IP transport needs the 'bac-py' package ({exc}); install it or pass --transport"
        ) from exc
    return bacpy_factory()
