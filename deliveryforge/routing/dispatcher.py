"""ChannelDispatcher — routes channel messages to ALL configured sinks.

Every message dispatched through this module is fanned out to every
registered sink.  Sink failures are logged but do not prevent delivery to
remaining sinks.  ``address_channels`` is fire-and-forget: it never raises,
because notification is not part of pipeline correctness.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from deliveryforge.models.push import PushDescription
from deliveryforge.models.routing import ChannelMessage, MessageLevel

if TYPE_CHECKING:
    from deliveryforge.routing.sinks import BaseSink

logger = logging.getLogger(__name__)


class SinkDispatchError(RuntimeError):
    """Raised when every sink fails during dispatch."""


class ChannelDispatcher:
    """Routes channel messages to all configured sinks.

    Usage
    -----
    >>> dispatcher = ChannelDispatcher()
    >>> dispatcher.register_sink(LoggingSink())
    >>> dispatcher.address_channels("Deployment is frozen", push=push)
    """

    def __init__(self) -> None:
        self._sinks: list[BaseSink] = []
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Sink management
    # ------------------------------------------------------------------

    def register_sink(self, sink: BaseSink) -> None:
        """Register a sink.  Duplicate registration of the same instance is ignored."""
        with self._lock:
            if sink not in self._sinks:
                self._sinks.append(sink)
                logger.info("Registered sink: %s", sink.sink_name)

    @property
    def registered_sinks(self) -> list[BaseSink]:
        with self._lock:
            return list(self._sinks)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(self, message: ChannelMessage) -> list[str]:
        """Dispatch a message to ALL registered sinks.

        Returns the names of the sinks that accepted it.

        Raises
        ------
        SinkDispatchError
            If *all* sinks fail.  Individual failures are tolerated.
        """
        sinks = self.registered_sinks
        if not sinks:
            logger.debug("No sinks registered; message %s dropped", message.message_id)
            return []

        succeeded: list[str] = []
        errors: list[tuple[str, Exception]] = []

        for sink in sinks:
            try:
                sink.accept(message)
                succeeded.append(sink.sink_name)
            except Exception as exc:  # noqa: BLE001
                logger.error(
                    "Sink %s failed for message %s: %s",
                    sink.sink_name,
                    message.message_id,
                    exc,
                )
                errors.append((sink.sink_name, exc))

        if errors and not succeeded:
            raise SinkDispatchError(
                f"All {len(errors)} sinks failed for message {message.message_id}: "
                + "; ".join(f"{name}: {exc}" for name, exc in errors)
            )

        return succeeded

    def address_channels(
        self,
        text: str,
        *,
        push: PushDescription | None = None,
        goal: str = "",
        level: MessageLevel = MessageLevel.INFO,
    ) -> None:
        """Send *text* to the channels of *push*'s repository.  Never raises."""
        message = ChannelMessage(
            text=text,
            level=level,
            repo_id=push.repo_id if push else "",
            push_id=push.short() if push else "",
            goal=goal,
        )
        try:
            self.dispatch(message)
        except SinkDispatchError:
            logger.exception("Could not address channels for %s", message.push_id or "-")
