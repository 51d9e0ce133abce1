from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

from plugdeps.session import Session
from plugdeps.settings import Settings
from plugdeps.ui.console import MemoryNotifier

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git is not installed")


def git(cwd: Path, *args: str) -> str:
    out = subprocess.check_output(["git", *args], cwd=cwd, text=True, stderr=subprocess.DEVNULL)
    return out.strip()


class Remote:
    """A local repository that plays the role of a plugin's origin."""

    def __init__(self, path: Path):
        self.path = path
        self._n = 0

    @property
    def url(self) -> str:
        return str(self.path)

    def commit(self, message: str) -> str:
        self._n += 1
        (self.path / "plugin.txt").write_text(f"{message}\n{self._n}\n", encoding="utf-8")
        git(self.path, "add", "plugin.txt")
        git(self.path, "commit", "--quiet", "-m", message)
        return self.head()

    def tag(self, name: str) -> None:
        git(self.path, "tag", name)

    def head(self) -> str:
        return git(self.path, "rev-parse", "HEAD")


@pytest.fixture(autouse=True)
def git_env(monkeypatch, tmp_path):
    """Keep git away from the user's config and any repository above tmp_path."""
    monkeypatch.setenv("GIT_AUTHOR_NAME", "plugdeps")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "plugdeps@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "plugdeps")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "plugdeps@example.com")
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(tmp_path / "gitconfig"))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_CEILING_DIRECTORIES", str(tmp_path))
    monkeypatch.setenv("GIT_TERMINAL_PROMPT", "0")


@pytest.fixture
def make_remote(tmp_path):
    def _make(name: str = "plugin", commits: int = 2) -> Remote:
        path = tmp_path / "remotes" / name
        path.mkdir(parents=True)
        git(path, "init", "--quiet")
        git(path, "checkout", "--quiet", "-b", "main")
        remote = Remote(path)
        for i in range(commits):
            remote.commit(f"{name} commit {i + 1}")
        return remote

    return _make


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(home=tmp_path / "home", concurrency=4, job_timeout=30.0)


@pytest.fixture
def notifier() -> MemoryNotifier:
    return MemoryNotifier()


@pytest.fixture
def session(settings, notifier) -> Session:
    return Session(settings, notifier=notifier)


@pytest.fixture
def installed(session, make_remote):
    """Register and clone plugins from fresh remotes. Returns the remotes by name."""
    def _install(*names: str, **options) -> dict[str, Remote]:
        remotes = {}
        for name in names:
            remote = make_remote(name)
            session.add(remote.url, {"name": name, **options.get(name, {})})
            remotes[name] = remote
        specs = session.install()
        assert all(not s.error for s in specs), [s.error for s in specs]
        return remotes

    return _install
