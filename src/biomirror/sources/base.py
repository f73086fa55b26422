"""Abstract base class for all sample sources."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Generic, TypeVar

T = TypeVar("T")

SampleSink = Callable[[T], None]


class SampleSource(ABC, Generic[T]):
    """Contract that every facial or physiological source must implement.

    A source wraps an external collaborator (camera pipeline, wearable
    bridge) and pushes normalised samples into a sink callable.  Sources
    never block the caller: :meth:`start` returns once delivery has been
    scheduled.
    """

    name: str = "source"

    def __init__(self) -> None:
        self._paused = False

    @abstractmethod
    async def start(self, sink: SampleSink[T]) -> None:
        """Begin delivering samples to *sink*.

        Raises
        ------
        SourceUnavailableError
            If the device, permission or upstream pipeline is unavailable.
        """

    @abstractmethod
    async def stop(self) -> None:
        """Stop delivering samples and release any resources."""

    def pause(self) -> None:
        """Keep the source alive but stop forwarding samples."""
        self._paused = True

    def resume(self) -> None:
        self._paused = False

    @property
    def paused(self) -> bool:
        return self._paused
