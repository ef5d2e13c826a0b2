"""Pytest configuration and fixtures"""

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Dict, List, Optional, Union

import pytest
import structlog

from statusline_git.core.git.command_builder import LOG_FORMAT
from statusline_git.core.git.git_types import ExecResult, GitCommandError

SAMPLE_SHA = "3f1c2b7a9d0e4f5a6b7c8d9e0f1a2b3c4d5e6f70"
SAMPLE_COMMIT_LINE = "\x1f".join(
    [SAMPLE_SHA, SAMPLE_SHA[:7], "Initial commit", "1700000000", "Alice"]
)

Response = Union[str, ExecResult, BaseException]


@pytest.fixture(autouse=True)
def restore_logging():
    """Undo setup_logging() calls made by a test"""
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    structlog.contextvars.clear_contextvars()


class FakeGitExecutor:
    """
    Scripted stand-in for GitCommandExecutor

    Responses are keyed by the space-joined command line without the leading
    'git'. Unscripted commands fail like git does outside a repository.
    """

    def __init__(self, responses: Optional[Dict[str, Response]] = None):
        self.responses: Dict[str, Response] = dict(responses or {})
        self.calls: List[str] = []
        self.timeouts: List[Optional[int]] = []

    def script(self, command: str, response: Response) -> None:
        self.responses[command] = response

    def count(self, command: str) -> int:
        return self.calls.count(command)

    async def run(
        self,
        subcommand,
        args=(),
        *,
        cwd=None,
        timeout_ms=None,
        ignore_errors=False,
        env=None,
    ) -> ExecResult:
        command = " ".join([subcommand, *args])
        self.calls.append(command)
        self.timeouts.append(timeout_ms)

        response = self.responses.get(
            command,
            ExecResult("", "fatal: not a git repository (or any of the parent directories): .git", 128),
        )
        if isinstance(response, BaseException):
            raise response
        if isinstance(response, str):
            response = ExecResult(response, "", 0)
        if not response.success and not ignore_errors:
            raise GitCommandError(f"git {command}", response.exit_code, response.stderr)
        return response


class FakeClock:
    """Manually advanced monotonic clock"""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def healthy_repo_responses() -> Dict[str, Response]:
    """Small repository on 'main', one commit ahead of its tag, two stashes"""
    return {
        "rev-parse --git-dir": ".git\n",
        "rev-parse --abbrev-ref HEAD": "main\n",
        "rev-parse --abbrev-ref @{upstream}": "origin/main\n",
        "rev-list --count --left-right origin/main...HEAD": "1\t2\n",
        "status --porcelain": "M  staged.py\n M modified.py\nMM both.py\n?? new.py\n",
        f"log -1 --format={LOG_FORMAT}": SAMPLE_COMMIT_LINE + "\n",
        "describe --tags --abbrev=0": "v1.0\n",
        "rev-list --count v1.0..HEAD": "3\n",
        "stash list": "stash@{0}: WIP on main: 1234567 Work in progress\nstash@{1}: On main: older\n",
        "rev-list --all --count": "42\n",
        "ls-files": "staged.py\nmodified.py\nboth.py\n",
    }


@pytest.fixture
def fake_executor() -> FakeGitExecutor:
    """Fake executor scripted as a healthy small repository"""
    return FakeGitExecutor(healthy_repo_responses())


@pytest.fixture
def make_executor():
    """Build a fake executor from the healthy repository plus overrides"""
    def _make(overrides: Optional[Dict[str, Response]] = None, healthy: bool = True):
        responses = healthy_repo_responses() if healthy else {}
        responses.update(overrides or {})
        return FakeGitExecutor(responses)
    return _make


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


GIT_TEST_ENV = {
    "GIT_AUTHOR_NAME": "Test User",
    "GIT_AUTHOR_EMAIL": "test@example.com",
    "GIT_COMMITTER_NAME": "Test User",
    "GIT_COMMITTER_EMAIL": "test@example.com",
    "GIT_CONFIG_NOSYSTEM": "1",
}


def run_git(cwd: Path, *args: str) -> str:
    """Run a (possibly mutating) git command to prepare a fixture repository"""
    env = {**os.environ, **GIT_TEST_ENV, "HOME": str(cwd.parent)}
    result = subprocess.run(
        ["git", *args],
        cwd=str(cwd),
        check=True,
        capture_output=True,
        text=True,
        env=env,
    )
    return result.stdout


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    """Create a real repository on 'main' with a single commit"""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")

    repo_path = tmp_path / "repo"
    repo_path.mkdir()
    run_git(repo_path, "init", "-q")
    run_git(repo_path, "symbolic-ref", "HEAD", "refs/heads/main")

    (repo_path / "README.md").write_text("# Test\n")
    run_git(repo_path, "add", "README.md")
    run_git(repo_path, "commit", "-q", "-m", "Initial commit")
    return repo_path


@pytest.fixture
def not_a_repo(tmp_path: Path) -> Path:
    """Directory outside any repository"""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")

    path = tmp_path / "plain"
    path.mkdir()
    return path
