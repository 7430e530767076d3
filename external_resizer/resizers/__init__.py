"""Backend resizers.

A backend performs the physical expansion of a volume. Exactly one backend is
wired into a controller when the process starts; the controller only ever
talks to it through the `Resizer` interface.
"""

from abc import ABC, abstractmethod

from ..models import ResizeOutcome, Volume


class Resizer(ABC):
    @property
    @abstractmethod
    def name(self) -> str:
        """Identifier of the backend, usable as an object name."""

    @abstractmethod
    def can_support(self, volume: Volume) -> bool:
        """Whether this backend knows how to expand the given volume."""

    @abstractmethod
    async def resize(self, volume: Volume, requested: int) -> ResizeOutcome:
        """Expand `volume` to at least `requested` bytes.

        Must be safe to call when the volume already has the requested size.
        Raises on failure.
        """


__all__ = ["Resizer"]
