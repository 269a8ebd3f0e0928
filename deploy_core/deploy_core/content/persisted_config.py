"""Deployment state that survives process restarts.

The state file is rewritten as a whole on every save: the new content goes
to a temporary file in the same directory which then replaces the old file
with :func:`os.replace`.  Readers therefore see either the previous state or
the new one, never a mix of both.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import BaseModel, ValidationError

from deploy_core.errors import ConfigPersistError

logger = logging.getLogger(__name__)


class PersistedState(BaseModel):
    """Live/previous pointers for directory, branch and revision."""

    last_updated_dir: str | None = None
    previous_dir: str | None = None
    branch: str | None = None
    branch_last: str | None = None
    revision: str | None = None
    revision_last: str | None = None
    updating_to_branch: str | None = None
    updating_to_revision: str | None = None

    def rotated(self, directory: str, branch: str, revision: str) -> PersistedState:
        """Return the state after publishing *directory* at *branch*/*revision*.

        Current values move to their ``previous`` slots and the transient
        ``updating_to_*`` markers are cleared.
        """
        return PersistedState(
            last_updated_dir=directory,
            previous_dir=self.last_updated_dir,
            branch=branch,
            branch_last=self.branch,
            revision=revision,
            revision_last=self.revision,
        )

    def marked_updating(self, branch: str | None, revision: str | None) -> PersistedState:
        return self.model_copy(update={"updating_to_branch": branch, "updating_to_revision": revision})


class PersistedConfig:
    """Loads and atomically saves :class:`PersistedState` as JSON."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> PersistedState:
        """Read the state file; a missing or unreadable file yields empty state."""
        if not self._path.exists():
            return PersistedState()
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
            return PersistedState.model_validate(data)
        except (OSError, json.JSONDecodeError, ValidationError) as exc:
            logger.warning("Ignoring unreadable state file %s: %s", self._path, exc)
            return PersistedState()

    def save(self, state: PersistedState) -> None:
        """Replace the state file with *state* in one atomic rename.

        Raises
        ------
        ConfigPersistError
            If the temporary file cannot be written or renamed.
        """
        payload = json.dumps(state.model_dump(exclude_none=True), indent=2, sort_keys=True)
        tmp_name: str | None = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=self._path.parent,
                prefix=f".{self._path.name}.",
                suffix=".tmp",
                delete=False,
            ) as fh:
                tmp_name = fh.name
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self._path)
            tmp_name = None
        except OSError as exc:
            raise ConfigPersistError(f"Failed to write state file {self._path}: {exc}") from exc
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    logger.debug("Could not remove temporary state file %s", tmp_name)
        logger.debug("Saved deployment state to %s", self._path)
