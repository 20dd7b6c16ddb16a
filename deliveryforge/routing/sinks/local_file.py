"""Local file sink — appends channel messages to JSON-lines files.

Layout: {base_path}/{owner}/{repo}.jsonl

Messages without a repository go to ``_general.jsonl``.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path

from deliveryforge.models.routing import ChannelMessage

logger = logging.getLogger(__name__)


class LocalFileSink:
    """Appends messages to one JSON-lines file per repository.

    Parameters
    ----------
    base_path:
        Root directory for message files.  Defaults to ``.deliveryforge/channels``.
    """

    def __init__(self, base_path: Path | str | None = None) -> None:
        self._base = Path(base_path) if base_path else Path(".deliveryforge/channels")
        self._base.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    @property
    def sink_name(self) -> str:
        return "local_file"

    def path_for(self, repo_id: str) -> Path:
        if not repo_id:
            return self._base / "_general.jsonl"
        owner, _, repo = repo_id.partition("/")
        return self._base / owner / f"{repo or owner}.jsonl"

    def accept(self, message: ChannelMessage) -> None:
        target = self.path_for(message.repo_id)
        line = json.dumps(message.model_dump(mode="json"), sort_keys=True)
        with self._lock:
            target.parent.mkdir(parents=True, exist_ok=True)
            with target.open("a", encoding="utf-8") as fh:
                fh.write(line + "\n")
        logger.debug("LocalFileSink: wrote %s to %s", message.message_id, target)

    def read_messages(self, repo_id: str) -> list[dict]:
        """Read back every message recorded for *repo_id*."""
        target = self.path_for(repo_id)
        if not target.exists():
            return []
        return [
            json.loads(line)
            for line in target.read_text(encoding="utf-8").splitlines()
            if line.strip()
        ]
