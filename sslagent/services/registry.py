"""Service registry used to select runtime service implementations."""

import logging
import threading
from typing import Any, Callable, Dict, Mapping

from sslagent.exceptions import UnknownServiceError

logger = logging.getLogger("sslagent")

ServiceFactory = Callable[[], Any]


class _Deferred:
    """Registry entry that has not been resolved yet."""

    __slots__ = ("factory",)

    def __init__(self, factory: ServiceFactory):
        self.factory = factory


class ServiceRegistry:
    """
    Mapping from service name to implementation.

    Entries start out as zero-argument factories. The first ``get`` of a name
    invokes its factory exactly once and caches the produced instance; every
    later ``get`` returns that same instance until the entry is overridden
    with ``set`` or the registry is ``reset``.

    The registry is built once at process start and handed to whatever needs
    a service, rather than living in a module-level singleton.

    Example:
        >>> registry = ServiceRegistry({"http": lambda: object()})
        >>> registry.get("http") is registry.get("http")
        True
    """

    def __init__(self, defaults: Mapping[str, ServiceFactory]):
        """
        Initialize registry.

        Args:
            defaults: Default factories, restored by ``reset``
        """
        self._defaults = dict(defaults)
        self._lock = threading.Lock()
        self._entries: Dict[str, Any] = {}
        self.reset()

    def get(self, name: str) -> Any:
        """
        Resolve a service.

        Args:
            name: Service name

        Returns:
            The service instance

        Raises:
            UnknownServiceError: If no service is registered under the name
        """
        try:
            entry = self._entries[name]
        except KeyError:
            raise UnknownServiceError(f"Unknown service {name}") from None

        if not isinstance(entry, _Deferred):
            return entry

        with self._lock:
            # Another thread may have resolved it while we waited
            entry = self._entries.get(name)
            if isinstance(entry, _Deferred):
                logger.debug(f"Resolving service '{name}'")
                entry = entry.factory()
                self._entries[name] = entry
            elif name not in self._entries:
                raise UnknownServiceError(f"Unknown service {name}")
            return entry

    def set(self, name: str, instance: Any) -> None:
        """
        Override a service with an instance.

        Args:
            name: Service name
            instance: Implementation returned by later ``get`` calls
        """
        with self._lock:
            self._entries[name] = instance

    def reset(self) -> None:
        """Restore the default factories, dropping resolved instances and overrides."""
        with self._lock:
            self._entries = {name: _Deferred(factory) for name, factory in self._defaults.items()}

    def __contains__(self, name: str) -> bool:
        return name in self._entries
