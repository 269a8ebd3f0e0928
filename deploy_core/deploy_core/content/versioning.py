"""Sequentially numbered content snapshots.

Every published revision lives in its own directory next to the git
checkout: ``renderedContent``, ``renderedContent_1``, ``renderedContent_2``
and so on.  A snapshot is a plain file tree (the nested ``.git`` directory is
removed) so the web tier can serve it directly.
"""

from __future__ import annotations

import logging
import re
import shutil
from pathlib import Path

from deploy_core.errors import RepositoryError
from deploy_core.git.repository import ContentRepository

logger = logging.getLogger(__name__)

_SUFFIX_RE = re.compile(r"^(?P<base>.+?)_(?P<seq>\d+)$")


def split_snapshot_name(name: str) -> tuple[str, int]:
    """Split ``base_N`` into ``(base, N)``; unnumbered names map to ``0``."""
    match = _SUFFIX_RE.match(name)
    if match is None:
        return name, 0
    return match.group("base"), int(match.group("seq"))


class ContentVersionManager:
    """Allocates and populates snapshot directories."""

    def allocate_next_snapshot(self, existing: Path) -> Path | None:
        """Return the sibling of *existing* with the next sequence number.

        Returns ``None`` (after logging) when the parent directory of
        *existing* does not exist.
        """
        existing = Path(existing)
        parent = existing.parent
        if not parent.is_dir():
            logger.warning("Cannot allocate snapshot: parent directory %s does not exist", parent)
            return None
        base, seq = split_snapshot_name(existing.name)
        return parent / f"{base}_{seq + 1}"

    def populate(self, repo: ContentRepository, dest: Path, revision: str | None = None) -> bool:
        """Fill *dest* with the content of *repo*'s local checkout.

        Clones from the local working tree (not the remote), hard-resets the
        fresh clone to *revision* when given, then deletes its ``.git``
        directory.  Never raises: failures are logged and reported as
        ``False``.
        """
        dest = Path(dest)
        if dest.exists() and any(dest.iterdir()):
            logger.warning("Snapshot directory %s already exists and is not empty", dest)
            return False

        try:
            branch = repo.current_branch()
            staged = ContentRepository.clone(
                str(repo.path.resolve()),
                dest,
                branch=None if branch == "HEAD" else branch,
                transport=repo.transport,
            )
            if revision:
                staged.reset_to_revision(revision)
        except (RepositoryError, ValueError) as exc:
            logger.error("Failed to clone %s into %s: %s", repo.path, dest, exc)
            # A half-populated snapshot was never published.
            shutil.rmtree(dest, ignore_errors=True)
            return False

        try:
            shutil.rmtree(staged.repository_directory)
        except OSError as exc:
            logger.error("Failed to strip git metadata from %s: %s", dest, exc)
            return False

        logger.info("Populated snapshot %s", dest)
        return True

    def create_snapshot(
        self,
        repo: ContentRepository,
        existing: Path,
        revision: str | None = None,
    ) -> Path | None:
        """Allocate the next free snapshot after *existing* and populate it.

        Sequence numbers already taken on disk (for example by a run that
        crashed after allocating) are skipped, never reused.
        """
        dest = self.allocate_next_snapshot(existing)
        while dest is not None and dest.exists():
            logger.info("Snapshot directory %s already taken, skipping", dest)
            dest = self.allocate_next_snapshot(dest)
        if dest is None:
            return None
        if not self.populate(repo, dest, revision):
            return None
        return dest
