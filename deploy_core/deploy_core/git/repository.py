"""Thin wrapper around a git working tree holding site content.

All interaction with the ``git`` binary is done through :func:`subprocess.run`
with explicit timeouts and structured error handling so that callers receive
:class:`RepositoryError` exceptions with descriptive messages rather than raw
subprocess failures.

Transport settings (SSH identity, known-hosts file, host key policy) are an
explicit :class:`GitTransportConfig` handed to each repository; nothing is
configured process-wide.
"""

from __future__ import annotations

import logging
import os
import re
import shlex
import subprocess
from pathlib import Path

from pydantic import BaseModel, Field

from deploy_core.errors import BranchNotFound, RepositoryError

logger = logging.getLogger(__name__)

DEFAULT_REMOTE = "origin"

# ---------------------------------------------------------------------------
# Git ref validation
# ---------------------------------------------------------------------------

# Matches hex SHAs (4-40 chars) and common ref patterns like branch names,
# tags, HEAD, HEAD~2, origin/main, etc.
_GIT_SHA_RE = re.compile(r"^[0-9a-fA-F]{4,40}$")
_GIT_REF_RE = re.compile(r"^[a-zA-Z0-9_./@~^{}\-]+$")


def _validate_git_ref(ref: str) -> None:
    """Validate a git ref or SHA to prevent option or command injection.

    Raises
    ------
    ValueError
        If *ref* is empty, starts with ``-`` or contains characters outside
        the safe ref alphabet.
    """
    if not ref:
        raise ValueError("Git ref cannot be empty")
    if ref.startswith("-"):
        raise ValueError(f"Invalid git ref: {ref!r}")
    if not (_GIT_SHA_RE.match(ref) or _GIT_REF_RE.match(ref)):
        raise ValueError(f"Invalid git ref: {ref!r}")


# ---------------------------------------------------------------------------
# Transport configuration
# ---------------------------------------------------------------------------


class GitTransportConfig(BaseModel):
    """Per-repository settings for talking to the remote."""

    ssh_key_path: Path | None = None
    known_hosts_path: Path | None = None
    strict_host_key_checking: bool = True
    timeout_seconds: int = Field(default=120, gt=0)

    def environment(self) -> dict[str, str]:
        """Return the environment overlay applied to every git invocation."""
        env = {"GIT_TERMINAL_PROMPT": "0"}
        if self.ssh_key_path is None and self.known_hosts_path is None and self.strict_host_key_checking:
            return env

        ssh = ["ssh"]
        if self.ssh_key_path is not None:
            ssh += ["-i", str(self.ssh_key_path), "-o", "IdentitiesOnly=yes"]
        if self.known_hosts_path is not None:
            ssh += ["-o", f"UserKnownHostsFile={self.known_hosts_path}"]
        ssh += ["-o", f"StrictHostKeyChecking={'yes' if self.strict_host_key_checking else 'no'}"]
        env["GIT_SSH_COMMAND"] = " ".join(shlex.quote(part) for part in ssh)
        return env


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _run_git(
    cmd: list[str],
    cwd: Path,
    transport: GitTransportConfig,
    *,
    check: bool = True,
) -> subprocess.CompletedProcess[str]:
    """Execute a git command and return the completed process.

    Raises
    ------
    RepositoryError
        On non-zero exit (when *check* is set), timeout, or if the process
        cannot be started.
    """
    if not Path(cwd).is_dir():
        raise RepositoryError(f"Working directory does not exist: {cwd}")
    env = dict(os.environ)
    env.update(transport.environment())
    try:
        return subprocess.run(
            cmd,
            cwd=cwd,
            env=env,
            capture_output=True,
            text=True,
            check=check,
            timeout=transport.timeout_seconds,
        )
    except subprocess.CalledProcessError as exc:
        stderr = (exc.stderr or "").strip()
        raise RepositoryError(f"git command failed: {' '.join(cmd)}\nExit code {exc.returncode}: {stderr}") from exc
    except subprocess.TimeoutExpired as exc:
        raise RepositoryError(f"git command timed out after {transport.timeout_seconds}s: {' '.join(cmd)}") from exc
    except FileNotFoundError as exc:
        raise RepositoryError("git executable not found. Ensure git is installed and on PATH.") from exc


def validate_repo(repo_path: Path) -> None:
    """Verify that *repo_path* is the root of a git working tree.

    Raises
    ------
    RepositoryError
        If the path is not a directory or holds no ``.git`` entry.
    """
    if not repo_path.is_dir():
        raise RepositoryError(f"Repository path does not exist: {repo_path}")
    if not (repo_path / ".git").exists():
        raise RepositoryError(f"Not a git repository (no .git directory): {repo_path}")


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


class ContentRepository:
    """Operations on one git working tree."""

    def __init__(self, path: Path, transport: GitTransportConfig | None = None) -> None:
        self._path = Path(path)
        self._transport = transport or GitTransportConfig()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def transport(self) -> GitTransportConfig:
        return self._transport

    @property
    def repository_directory(self) -> Path:
        """Path of the nested ``.git`` metadata directory."""
        return self._path / ".git"

    @classmethod
    def open(cls, path: Path, transport: GitTransportConfig | None = None) -> ContentRepository:
        """Wrap an existing working tree, validating that it is one."""
        validate_repo(Path(path))
        return cls(path, transport)

    @classmethod
    def clone(
        cls,
        source_uri: str,
        dest_dir: Path,
        *,
        branch: str | None = None,
        transport: GitTransportConfig | None = None,
    ) -> ContentRepository:
        """Clone *source_uri* into *dest_dir*, restricted to a single branch.

        A destination that already holds a working tree is reused as is.
        Submodules are never cloned.
        """
        dest_dir = Path(dest_dir)
        transport = transport or GitTransportConfig()
        if (dest_dir / ".git").exists():
            logger.debug("Working tree already present at %s; skipping clone", dest_dir)
            return cls(dest_dir, transport)

        cmd = ["git", "clone", "--single-branch", "--no-recurse-submodules"]
        if branch:
            _validate_git_ref(branch)
            cmd += ["--branch", branch]
        cmd += ["--", source_uri, str(dest_dir)]

        dest_dir.parent.mkdir(parents=True, exist_ok=True)
        logger.debug("Cloning %s to %s", source_uri, dest_dir)
        _run_git(cmd, dest_dir.parent, transport)
        return cls(dest_dir, transport)

    def _git(self, *args: str) -> str:
        return _run_git(["git", *args], self._path, self._transport).stdout.strip()

    def _git_succeeds(self, *args: str) -> bool:
        return _run_git(["git", *args], self._path, self._transport, check=False).returncode == 0

    # -- inspection ---------------------------------------------------------

    def current_branch(self) -> str:
        """Return the checked-out branch name (``HEAD`` when detached)."""
        return self._git("rev-parse", "--abbrev-ref", "HEAD")

    def current_revision(self) -> str:
        """Return the full SHA of the current HEAD commit."""
        return self._git("rev-parse", "HEAD")

    def resolve_revision(self, ref: str) -> str:
        """Return the full commit SHA that *ref* names in this checkout.

        Raises
        ------
        RepositoryError
            If *ref* does not name a commit.
        """
        _validate_git_ref(ref)
        return self._git("rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}")

    def has_local_branch(self, name: str) -> bool:
        _validate_git_ref(name)
        return self._git_succeeds("show-ref", "--verify", "--quiet", f"refs/heads/{name}")

    def has_remote_branch(self, name: str, remote: str = DEFAULT_REMOTE) -> bool:
        _validate_git_ref(name)
        return self._git_succeeds("show-ref", "--verify", "--quiet", f"refs/remotes/{remote}/{name}")

    def list_refs(self) -> list[str]:
        """Return the full names of all local and remote-tracking branches."""
        output = self._git("branch", "--all", "--format=%(refname)")
        return [line.strip() for line in output.splitlines() if line.strip()]

    # -- mutation -----------------------------------------------------------

    def fetch(self, *, prune: bool = True) -> None:
        """Fetch all branches of the default remote, optionally pruning deleted refs.

        The refspec is explicit because checkouts are cloned single-branch,
        which narrows the configured one to the initial branch.
        """
        args = ["fetch", DEFAULT_REMOTE, f"+refs/heads/*:refs/remotes/{DEFAULT_REMOTE}/*"]
        if prune:
            args.insert(1, "--prune")
        logger.debug("Fetching %s (prune=%s) in %s", DEFAULT_REMOTE, prune, self._path)
        self._git(*args)

    def pull(self) -> None:
        """Fast-forward the current branch to its upstream."""
        logger.debug("Pulling latest updates in %s", self._path)
        self._git("pull", "--ff-only")

    def switch_branch(self, name: str) -> bool:
        """Check out *name*, creating a tracking branch if only the remote has it.

        Returns ``True`` if the checked-out branch changed.

        Raises
        ------
        BranchNotFound
            If neither ``refs/heads/<name>`` nor ``refs/remotes/origin/<name>``
            exists.
        """
        _validate_git_ref(name)
        current = self.current_branch()
        if current == name:
            return False

        if not self.has_local_branch(name):
            if not self.has_remote_branch(name):
                raise BranchNotFound(name)
            logger.info("Creating tracking branch %s from %s/%s", name, DEFAULT_REMOTE, name)
            self._git("branch", "--track", name, f"{DEFAULT_REMOTE}/{name}")

        logger.info("Switching branch from %s to %s", current, name)
        self._git("checkout", name)
        return True

    def reset_to_revision(self, sha: str) -> None:
        """Hard-reset index and working tree to *sha*.

        Destructive.  Only call this on a freshly cloned staging tree, never
        on a directory that is serving traffic.
        """
        _validate_git_ref(sha)
        logger.info("Resetting %s to %s", self._path, sha)
        self._git("reset", "--hard", sha)

    def create_remote_branch_if_missing(self, name: str) -> bool:
        """Create and push *name* unless some ref already ends with ``/name``.

        Fetches with pruning first so refs deleted upstream do not produce a
        false "already exists".  Returns ``True`` if a branch was created.
        """
        _validate_git_ref(name)
        try:
            logger.info("Purging branches that no longer have remotes")
            self.fetch(prune=True)
        except RepositoryError as exc:
            logger.warning("Cannot fetch from remote, not creating %s: %s", name, exc)
            return False

        if any(ref.endswith(f"/{name}") for ref in self.list_refs()):
            logger.info("Branch %s already exists", name)
            return False

        self._git("branch", name)
        self._git("push", "--set-upstream", DEFAULT_REMOTE, name)
        logger.info("Created and pushed branch %s", name)
        return True


def fallback_branch_name(branch: str, environment: str) -> str:
    """Return the environment-qualified form of *branch*."""
    return f"cd-{environment}-{branch}"


def switch_branch_with_fallback(repo: ContentRepository, branch: str, environment: str) -> str:
    """Switch *repo* to *branch*, falling back to ``cd-<environment>-<branch>``.

    Returns the name of the branch actually checked out.

    Raises
    ------
    BranchNotFound
        If neither the literal nor the environment-qualified branch exists.
    """
    try:
        repo.switch_branch(branch)
        return branch
    except BranchNotFound:
        fallback = fallback_branch_name(branch, environment)
        logger.info("Branch %s not found, trying %s", branch, fallback)

    try:
        repo.switch_branch(fallback)
    except BranchNotFound as exc:
        raise BranchNotFound(branch) from exc
    return fallback
