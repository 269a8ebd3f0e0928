"""Shared fixtures for deploy_core unit tests."""

from __future__ import annotations

import shutil
import subprocess
from collections.abc import Callable
from pathlib import Path

import pytest
import pytest_asyncio
from deploy_core.history.log import HistoryLog
from deploy_core.state.database import create_tables, dispose_engine, get_engine


@pytest_asyncio.fixture
async def engine(tmp_path: Path):
    """File-backed SQLite history store, fresh per test."""
    eng = get_engine(f"sqlite+aiosqlite:///{tmp_path / 'history.db'}")
    await create_tables(eng)
    yield eng
    await dispose_engine(eng)


@pytest.fixture
def history(engine) -> HistoryLog:
    return HistoryLog(engine)


# ---------------------------------------------------------------------------
# Real git helpers
# ---------------------------------------------------------------------------


def _git(cwd: Path, *args: str) -> str:
    result = subprocess.run(
        ["git", "-c", "user.name=Test", "-c", "user.email=test@example.com", *args],
        cwd=cwd,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout.strip()


@pytest.fixture
def git() -> Callable[..., str]:
    """Run git in a directory with a fixed identity; returns stdout."""
    if shutil.which("git") is None:
        pytest.skip("git executable not installed")
    return _git


@pytest.fixture
def commit_file(git) -> Callable[[Path, str, str], str]:
    """Write a file, commit it and return the new HEAD SHA."""

    def _commit(repo: Path, name: str, content: str) -> str:
        (repo / name).write_text(content, encoding="utf-8")
        git(repo, "add", name)
        git(repo, "commit", "-q", "-m", f"update {name}")
        return git(repo, "rev-parse", "HEAD")

    return _commit


@pytest.fixture
def origin_repo(tmp_path: Path, git, commit_file) -> Path:
    """A non-bare repository on ``master`` with one commit."""
    path = tmp_path / "origin"
    path.mkdir()
    git(path, "init", "-q")
    git(path, "symbolic-ref", "HEAD", "refs/heads/master")
    commit_file(path, "index.html", "<h1>v1</h1>")
    return path
