"""Module that implements the provider service process."""

import contextlib
from typing import NoReturn

from davmount.filesystem import LocalMountTable, MountRegistry, MountStore
from davmount.logger import log
from davmount.provider import ProviderService, RequestDispatcher
import davmount.rpc as rpc
from .common import Operations


class ServeOperations(Operations):
    """Class that runs the provider service until the process is stopped."""

    def _run(self, stack: contextlib.ExitStack) -> NoReturn:
        """Resume the persisted mounts and serve requests for them."""
        registry = self._create_registry()

        # Mount records are kept so the mounts come back on the next start
        stack.callback(registry.shutdown)

        resumed = registry.resume_mounts()
        log.info(f"provider service starting with {len(resumed)} mounts")

        dispatcher = RequestDispatcher(registry, self._config.remote.staging_root)
        service = ProviderService(registry, dispatcher)

        server = rpc.Server(
            service,
            token=self._config.service.token,
            worker_count=self._config.service.workers,
        )
        server.serve(self.endpoint)

    def _create_registry(self) -> MountRegistry:
        """Create the registry for the mounts of this process."""
        store = MountStore(self._config.store.path)
        timeout = self._config.remote.timeout
        client_factory = MountRegistry.webdav_client_factory(timeout)

        return MountRegistry(LocalMountTable(), store, client_factory)
