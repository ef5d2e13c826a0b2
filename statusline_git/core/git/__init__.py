"""Git information core module"""
from .command_executor import GitCommandExecutor
from .command_builder import GitCommandBuilder
from .command_validator import GitCommandValidator
from .cache import GitCache
from .operation_detector import detect_operation
from .repo_size import RepositorySizeProbe
from .info_service import (
    GitInfoService,
    create_git_service,
    create_lightweight_git_service,
    create_high_performance_git_service
)
from .git_types import (
    CommandSpec,
    ExecResult,
    GitCacheKey,
    GitCacheStats,
    GitOperationType,
    GitBranchInfo,
    GitWorkingStatus,
    GitOperationStatus,
    GitVersionInfo,
    GitStashEntry,
    GitStashInfo,
    GitInfo,
    info_to_dict,
    GitError,
    GitSecurityError,
    GitExecutionError,
    GitOutputLimitError,
    GitTimeoutError,
    GitCommandError,
    GitPermissionError,
    GitCorruptError,
    GitNetworkError,
    GitRepoNotFoundError
)

__all__ = [
    'GitCommandExecutor',
    'GitCommandBuilder',
    'GitCommandValidator',
    'GitCache',
    'detect_operation',
    'RepositorySizeProbe',
    'GitInfoService',
    'create_git_service',
    'create_lightweight_git_service',
    'create_high_performance_git_service',
    'CommandSpec',
    'ExecResult',
    'GitCacheKey',
    'GitCacheStats',
    'GitOperationType',
    'GitBranchInfo',
    'GitWorkingStatus',
    'GitOperationStatus',
    'GitVersionInfo',
    'GitStashEntry',
    'GitStashInfo',
    'GitInfo',
    'info_to_dict',
    'GitError',
    'GitSecurityError',
    'GitExecutionError',
    'GitOutputLimitError',
    'GitTimeoutError',
    'GitCommandError',
    'GitPermissionError',
    'GitCorruptError',
    'GitNetworkError',
    'GitRepoNotFoundError'
]
