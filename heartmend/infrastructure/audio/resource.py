"""
Single-owner handles for shared audio devices.

The microphone and the AI voice output are each one physical resource. Whoever
uses them acquires the handle first and releases it when done; a second owner
is refused until then.
"""
import logging
import threading
from typing import Optional

logger = logging.getLogger("audio_resource")


class ResourceBusyError(RuntimeError):
    """Raised when a resource is already held by a different owner."""

    def __init__(self, resource: str, owner: str):
        super().__init__(f"{resource} is held by {owner}")
        self.resource = resource
        self.owner = owner


class ResourceHandle:
    """A named resource that at most one owner may hold at a time."""

    def __init__(self, name: str):
        self.name = name
        self._owner: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def owner(self) -> Optional[str]:
        return self._owner

    def acquire(self, owner: str) -> None:
        """
        Take the resource for ``owner``. Re-acquiring by the same owner is a no-op.

        Raises:
            ResourceBusyError: If someone else holds it
        """
        with self._lock:
            if self._owner is not None and self._owner != owner:
                raise ResourceBusyError(self.name, self._owner)
            self._owner = owner
        logger.debug("%s acquired by %s", self.name, owner)

    def release(self, owner: str) -> bool:
        """Give the resource back. Returns False if ``owner`` did not hold it."""
        with self._lock:
            if self._owner != owner:
                return False
            self._owner = None
        logger.debug("%s released by %s", self.name, owner)
        return True

    def is_held(self) -> bool:
        return self._owner is not None

    def __repr__(self) -> str:
        return f"ResourceHandle({self.name!r}, owner={self._owner!r})"
