"""In-process sinks: one that logs, one that buffers."""

from __future__ import annotations

import logging
import threading

from deliveryforge.models.routing import ChannelMessage, MessageLevel

logger = logging.getLogger(__name__)

_LEVELS = {
    MessageLevel.INFO: logging.INFO,
    MessageLevel.WARNING: logging.WARNING,
    MessageLevel.ERROR: logging.ERROR,
}


class LoggingSink:
    """Writes every message to the ``deliveryforge.channels`` logger."""

    def __init__(self, logger_name: str = "deliveryforge.channels") -> None:
        self._logger = logging.getLogger(logger_name)

    @property
    def sink_name(self) -> str:
        return "logging"

    def accept(self, message: ChannelMessage) -> None:
        self._logger.log(
            _LEVELS[message.level],
            "[%s] %s",
            message.push_id or message.repo_id or "-",
            message.text,
        )


class MemorySink:
    """Buffers messages in memory for later inspection."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._messages: list[ChannelMessage] = []

    @property
    def sink_name(self) -> str:
        return "memory"

    def accept(self, message: ChannelMessage) -> None:
        with self._lock:
            self._messages.append(message)

    @property
    def messages(self) -> list[ChannelMessage]:
        with self._lock:
            return list(self._messages)

    @property
    def texts(self) -> list[str]:
        return [m.text for m in self.messages]
