"""Sink protocol and built-in sinks for channel messages.

All sinks implement the ``BaseSink`` protocol: a ``sink_name`` property
and an ``accept(message)`` method.  The dispatcher calls ``accept`` on
every registered sink for every dispatched message.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from deliveryforge.models.routing import ChannelMessage


@runtime_checkable
class BaseSink(Protocol):
    """Protocol that every sink must implement.

    Attributes
    ----------
    sink_name : str
        A unique human-readable identifier for this sink instance
        (e.g. ``"logging"``, ``"local_file"``).
    """

    @property
    def sink_name(self) -> str:
        """Return the unique name of this sink."""
        ...

    def accept(self, message: ChannelMessage) -> None:
        """Accept and deliver a message.

        Critical failures may raise; the dispatcher will log them and
        continue to the next sink.
        """
        ...


from deliveryforge.routing.sinks.local_file import LocalFileSink  # noqa: E402
from deliveryforge.routing.sinks.memory import LoggingSink, MemorySink  # noqa: E402

__all__ = ["BaseSink", "LocalFileSink", "LoggingSink", "MemorySink"]
