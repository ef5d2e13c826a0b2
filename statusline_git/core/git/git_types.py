"""Git-related type definitions and exceptions"""
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence


EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


class GitOperationType(str, Enum):
    """In-progress Git operations"""
    NONE = "none"
    MERGE = "merge"
    REBASE = "rebase"
    CHERRY_PICK = "cherry-pick"
    REVERT = "revert"
    BISECT = "bisect"
    AM = "am"
    AM_REBASE = "am-rebase"


class GitCacheKey(str, Enum):
    """Cache slots owned by one service instance"""
    BRANCH_INFO = "branch_info"
    WORKING_STATUS = "working_status"
    OPERATION_STATUS = "operation_status"
    VERSION_INFO = "version_info"
    STASH_INFO = "stash_info"
    FULL_INFO = "full_info"


@dataclass(frozen=True)
class CommandSpec:
    """A single read-only Git invocation"""
    subcommand: str
    args: Sequence[str] = ()
    working_dir: Optional[Path] = None
    timeout_ms: Optional[int] = None

    @property
    def argv(self) -> List[str]:
        return [self.subcommand, *self.args]

    def __str__(self) -> str:
        return " ".join(["git", *self.argv])


@dataclass(frozen=True)
class ExecResult:
    """Result of Git command execution"""
    stdout: str
    stderr: str
    exit_code: int

    @property
    def success(self) -> bool:
        return self.exit_code == 0


@dataclass(frozen=True)
class CacheEntry:
    """Cached value with its creation and expiry times (monotonic seconds)"""
    data: Any
    created_at: float
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at

    @property
    def ttl(self) -> float:
        return self.expires_at - self.created_at


@dataclass(frozen=True)
class GitCacheStats:
    """Snapshot of cache counters"""
    total_items: int
    valid_items: int
    expired_items: int
    hits: int
    misses: int
    hit_rate: float


@dataclass(frozen=True)
class GitBranchInfo:
    """Current branch and its divergence from upstream"""
    current: str
    detached: bool = False
    ahead: int = 0
    behind: int = 0
    upstream: Optional[str] = None

    @classmethod
    def empty(cls) -> "GitBranchInfo":
        return cls(current="no-git")


@dataclass(frozen=True)
class GitWorkingStatus:
    """Counts of changed paths in the working tree"""
    clean: bool = True
    staged: int = 0
    unstaged: int = 0
    untracked: int = 0
    conflicted: int = 0

    @classmethod
    def empty(cls) -> "GitWorkingStatus":
        return cls()


@dataclass(frozen=True)
class GitOperationStatus:
    """Merge/rebase/etc. currently in progress"""
    type: GitOperationType = GitOperationType.NONE
    in_progress: bool = False
    branch: Optional[str] = None
    progress: Optional[str] = None

    @classmethod
    def empty(cls) -> "GitOperationStatus":
        return cls()


@dataclass(frozen=True)
class GitVersionInfo:
    """Latest commit and its distance from the latest tag"""
    sha: str = ""
    short_sha: str = ""
    message: str = ""
    timestamp: datetime = EPOCH
    author: str = ""
    latest_tag: Optional[str] = None
    commits_since_tag: Optional[int] = None

    @classmethod
    def empty(cls) -> "GitVersionInfo":
        return cls()


@dataclass(frozen=True)
class GitStashEntry:
    """Most recent stash entry"""
    index: int
    description: str
    branch: str


@dataclass(frozen=True)
class GitStashInfo:
    """Stash size and newest entry"""
    count: int = 0
    latest: Optional[GitStashEntry] = None

    @classmethod
    def empty(cls) -> "GitStashInfo":
        return cls()


INFO_CATEGORIES = ("branch", "status", "operation", "version", "stash")


@dataclass(frozen=True)
class GitInfo:
    """Aggregate snapshot; every field is always present"""
    is_repo: bool
    branch: GitBranchInfo = field(default_factory=GitBranchInfo.empty)
    status: GitWorkingStatus = field(default_factory=GitWorkingStatus.empty)
    operation: GitOperationStatus = field(default_factory=GitOperationStatus.empty)
    version: GitVersionInfo = field(default_factory=GitVersionInfo.empty)
    stash: GitStashInfo = field(default_factory=GitStashInfo.empty)

    @classmethod
    def empty(cls) -> "GitInfo":
        return cls(is_repo=False)

    def filtered(self, categories: Sequence[str]) -> "GitInfo":
        """
        Copy keeping only the given categories

        Categories left out are replaced by their empty values so the
        result keeps its full shape.
        """
        empty = GitInfo(is_repo=self.is_repo)
        values = {
            name: getattr(self, name) if name in categories else getattr(empty, name)
            for name in INFO_CATEGORIES
        }
        return GitInfo(is_repo=self.is_repo, **values)

    def to_dict(self) -> Dict[str, Any]:
        return info_to_dict(self)


def info_to_dict(info: Any) -> Dict[str, Any]:
    """JSON-friendly dict of any Git info dataclass"""
    return _jsonable(asdict(info))


def _jsonable(value: Any) -> Any:
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_jsonable(item) for item in value]
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return value.isoformat()
    return value


# Git-specific exceptions
class GitError(Exception):
    """Base class for Git errors"""
    def __init__(
        self,
        message: str,
        command: Optional[str] = None,
        exit_code: Optional[int] = None,
        stderr: Optional[str] = None,
    ):
        super().__init__(message)
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr


class GitSecurityError(GitError):
    """Command or argument rejected before execution"""
    def __init__(self, message: str, input: Any):
        super().__init__(f"{message}: {input}")
        self.input = input


class GitExecutionError(GitError):
    """Process-level failure (spawn error, output limit)"""
    def __init__(
        self,
        message: str,
        command: str,
        args: Sequence[str] = (),
        original_error: Optional[BaseException] = None,
    ):
        super().__init__(f"{message}: git {' '.join([command, *args])}", command=command)
        self.git_args = list(args)
        self.original_error = original_error


class GitOutputLimitError(GitExecutionError):
    """Command output exceeded the per-stream limit"""
    def __init__(self, command: str, args: Sequence[str] = (), limit: int = 0):
        super().__init__(f"Output too large (limit {limit} bytes)", command, args)
        self.limit = limit


class GitTimeoutError(GitError):
    """Git operation timed out"""
    def __init__(self, command: str, timeout_ms: int, attempts: int = 1):
        super().__init__(
            f"Git command '{command}' timed out after {timeout_ms}ms "
            f"({attempts} attempt{'s' if attempts != 1 else ''})",
            command=command,
        )
        self.timeout_ms = timeout_ms
        self.attempts = attempts


class GitCommandError(GitError):
    """Git command execution failed"""
    def __init__(self, command: str, exit_code: int, stderr: str):
        super().__init__(
            f"Git command '{command}' failed with exit code {exit_code}: {stderr}",
            command=command,
            exit_code=exit_code,
            stderr=stderr,
        )


class GitPermissionError(GitError):
    """Permission denied while running a Git command"""
    def __init__(self, command: str, path: str, stderr: str = ""):
        super().__init__(
            f"Permission denied for Git command: {command} in {path}",
            command=command,
            exit_code=128,
            stderr=stderr,
        )
        self.path = path


class GitCorruptError(GitError):
    """Repository objects appear corrupt"""
    def __init__(self, command: str, path: str, stderr: str = ""):
        details = f" ({stderr.strip()})" if stderr.strip() else ""
        super().__init__(
            f"Git repository appears to be corrupt: {path}{details}",
            command=command,
            exit_code=128,
            stderr=stderr,
        )
        self.path = path


class GitNetworkError(GitError):
    """Network failure reported by Git"""
    def __init__(self, command: str, stderr: str = ""):
        details = f" ({stderr.strip()})" if stderr.strip() else ""
        super().__init__(
            f"Git network operation failed: {command}{details}",
            command=command,
            stderr=stderr,
        )


class GitRepoNotFoundError(GitError):
    """Working directory is not inside a repository"""
    def __init__(self, command: str, path: str, stderr: str = ""):
        super().__init__(
            f"Git repository not found in: {path}",
            command=command,
            exit_code=128,
            stderr=stderr,
        )
        self.path = path
