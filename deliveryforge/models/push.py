"""Push description — the immutable record of one code-change event."""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class PushDescription(BaseModel):
    """A single code-change event, read-only throughout the pipeline.

    Translating raw webhook payloads into this record is the job of an
    external source-control listener.  Build-tool and file-presence signals
    arrive pre-computed; anything else an extension pack needs goes into
    ``flags``.
    """

    model_config = ConfigDict(frozen=True)

    owner: str
    repo: str
    branch: str
    sha: str
    default_branch: str = "main"
    # Build-tool signals
    is_maven: bool = False
    is_node: bool = False
    # File-presence signals
    has_cloud_foundry_manifest: bool = False
    has_spring_boot_application_class: bool = False
    added_cloud_foundry_manifest: bool = False  # manifest added by this push
    flags: dict[str, bool] = Field(default_factory=dict)
    cwd: Path | None = None  # checked-out working directory, if any

    @property
    def repo_id(self) -> str:
        """Return ``owner/repo``."""
        return f"{self.owner}/{self.repo}"

    @property
    def to_default_branch(self) -> bool:
        """Whether the push landed on the repository's default branch."""
        return self.branch == self.default_branch

    @property
    def freeze_scope(self) -> str:
        """The scope key the freeze gate is consulted with (the owning team)."""
        return self.owner

    def flag(self, name: str) -> bool:
        """Return a free-form flag, treating unknown names as False."""
        return bool(self.flags.get(name, False))

    def short(self) -> str:
        """Human-readable one-liner used in logs and notifications."""
        return f"{self.repo_id}@{self.branch}:{self.sha[:7]}"
