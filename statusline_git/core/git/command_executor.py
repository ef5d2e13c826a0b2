"""Safe Git command execution only"""
import asyncio
import os
import time
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Sequence, Union

from statusline_git.core.config import MAX_TIMEOUT_MS, settings
from statusline_git.infrastructure.logging import get_logger
from statusline_git.infrastructure.metrics import (
    git_command_duration_seconds,
    git_commands_total,
)

from .command_validator import GitCommandValidator
from .git_types import (
    CommandSpec,
    ExecResult,
    GitCommandError,
    GitCorruptError,
    GitError,
    GitExecutionError,
    GitNetworkError,
    GitOutputLimitError,
    GitPermissionError,
    GitRepoNotFoundError,
    GitTimeoutError,
)

logger = get_logger(__name__)

PathLike = Union[str, Path]

PERMISSION_MARKERS = ('permission denied',)
CORRUPTION_MARKERS = ('corrupt', 'bad object', 'broken')
NETWORK_MARKERS = (
    'could not resolve host',
    'connection timed out',
    'failed to connect',
    'network is unreachable',
)
NOT_A_REPO_MARKERS = ('not a git repository',)


class GitCommandExecutor:
    """Handles Git command execution only"""

    DEFAULT_TIMEOUT_MS = 1000
    MAX_RETRIES = 2

    # Inherited from the parent environment; everything else is dropped
    SAFE_ENV_KEYS = ('PATH', 'HOME', 'USER')
    SAFE_ENV_PREFIXES = ('LANG', 'LC_')
    # Would redirect git at another repository
    BLOCKED_ENV_KEYS = ('GIT_DIR', 'GIT_WORK_TREE', 'GIT_INDEX_FILE', 'GIT_OBJECT_DIRECTORY')

    def __init__(
        self,
        git_binary: Optional[str] = None,
        timeout_ms: int = DEFAULT_TIMEOUT_MS,
        max_output_bytes: Optional[int] = None,
        retry_delay_ms: Optional[int] = None,
        validator: Optional[GitCommandValidator] = None,
    ):
        """
        Initialize executor

        Args:
            git_binary: Path to git binary
            timeout_ms: Default per-command timeout, capped at 30s
            max_output_bytes: Limit for each of stdout and stderr
            retry_delay_ms: Delay before retrying a timed-out command
            validator: Command validator
        """
        self.git_binary = git_binary or settings.git_binary_path
        self.timeout_ms = min(timeout_ms, MAX_TIMEOUT_MS)
        self.max_output_bytes = max_output_bytes or settings.git_max_output_bytes
        self.retry_delay_ms = (
            settings.git_retry_delay_ms if retry_delay_ms is None else retry_delay_ms
        )
        self.validator = validator or GitCommandValidator()

    async def run(
        self,
        subcommand: str,
        args: Sequence[str] = (),
        *,
        cwd: Optional[PathLike] = None,
        timeout_ms: Optional[int] = None,
        ignore_errors: bool = False,
        env: Optional[Mapping[str, str]] = None,
    ) -> ExecResult:
        """
        Execute a read-only Git command safely

        Args:
            subcommand: Git subcommand
            args: Arguments after the subcommand
            cwd: Working directory
            timeout_ms: Per-attempt timeout
            ignore_errors: Return a failed result instead of raising on non-zero exit
            env: Environment overrides

        Returns:
            ExecResult with decoded output

        Raises:
            GitSecurityError: If the command is not allowed (nothing is spawned)
            GitTimeoutError: If every attempt timed out
            GitOutputLimitError: If an output stream exceeded max_output_bytes
            GitExecutionError: If the process could not run
            GitError: Classified failure on non-zero exit
        """
        args = list(args)
        self.validator.validate(subcommand, args)

        timeout_ms = self._effective_timeout(timeout_ms)
        command = ' '.join(['git', subcommand, *args])

        attempts = 0
        while True:
            attempts += 1
            try:
                result = await self._run_once(subcommand, args, cwd, timeout_ms, env)
                break
            except asyncio.TimeoutError:
                git_commands_total.labels(subcommand=subcommand, status='timeout').inc()
                if attempts > self.MAX_RETRIES:
                    logger.debug('git_command_timeout', command=command, attempts=attempts)
                    raise GitTimeoutError(command, timeout_ms, attempts) from None
                logger.debug('git_command_retry', command=command, attempt=attempts)
                await asyncio.sleep(self.retry_delay_ms / 1000)

        status = 'success' if result.success else 'failure'
        git_commands_total.labels(subcommand=subcommand, status=status).inc()

        if result.success or ignore_errors:
            return result

        raise self.classify_failure(command, result, cwd)

    async def execute(
        self,
        spec: CommandSpec,
        *,
        ignore_errors: bool = False,
        env: Optional[Mapping[str, str]] = None,
    ) -> ExecResult:
        """Execute a CommandSpec"""
        return await self.run(
            spec.subcommand,
            spec.args,
            cwd=spec.working_dir,
            timeout_ms=spec.timeout_ms,
            ignore_errors=ignore_errors,
            env=env,
        )

    async def run_command(self, command: str, **kwargs) -> ExecResult:
        """Parse and execute a raw command string such as 'rev-parse --git-dir'"""
        parts = self.validator.parse_command(command)
        return await self.run(parts[0], parts[1:], **kwargs)

    def build_environment(self, overrides: Optional[Mapping[str, str]] = None) -> Dict[str, str]:
        """Create a sanitized environment for the git subprocess"""
        env = {
            k: v
            for k, v in os.environ.items()
            if k in self.SAFE_ENV_KEYS or k.startswith(self.SAFE_ENV_PREFIXES)
        }
        if overrides:
            env.update(overrides)

        env.update({
            'GIT_TERMINAL_PROMPT': '0',  # Disable prompts
            'GIT_OPTIONAL_LOCKS': '0',   # Never take the index lock for status
        })
        for key in self.BLOCKED_ENV_KEYS:
            env.pop(key, None)
        return env

    def classify_failure(
        self,
        command: str,
        result: ExecResult,
        cwd: Optional[PathLike] = None,
    ) -> GitError:
        """Map a failed execution to the most specific GitError"""
        stderr = result.stderr
        lowered = stderr.lower()
        path = str(cwd or os.getcwd())

        if any(marker in lowered for marker in PERMISSION_MARKERS):
            return GitPermissionError(command, path, stderr)
        if any(marker in lowered for marker in CORRUPTION_MARKERS):
            return GitCorruptError(command, path, stderr)
        if any(marker in lowered for marker in NETWORK_MARKERS):
            return GitNetworkError(command, stderr)
        if any(marker in lowered for marker in NOT_A_REPO_MARKERS):
            return GitRepoNotFoundError(command, path, stderr)
        return GitCommandError(command, result.exit_code, stderr.strip())

    async def _run_once(
        self,
        subcommand: str,
        args: List[str],
        cwd: Optional[PathLike],
        timeout_ms: int,
        env: Optional[Mapping[str, str]],
    ) -> ExecResult:
        start = time.monotonic()
        try:
            process = await asyncio.create_subprocess_exec(
                self.git_binary,
                subcommand,
                *args,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(cwd) if cwd is not None else None,
                env=self.build_environment(env),
            )
        except OSError as e:
            git_commands_total.labels(subcommand=subcommand, status='error').inc()
            raise GitExecutionError(
                f'Failed to start git: {e}', subcommand, args, e
            ) from e

        try:
            stdout, stderr = await asyncio.wait_for(
                self._communicate(process, subcommand, args),
                timeout=timeout_ms / 1000,
            )
        except (asyncio.TimeoutError, GitExecutionError):
            await self._kill(process)
            raise
        finally:
            git_command_duration_seconds.labels(subcommand=subcommand).observe(
                time.monotonic() - start
            )

        result = ExecResult(
            stdout=stdout.decode('utf-8', errors='replace'),
            stderr=stderr.decode('utf-8', errors='replace'),
            exit_code=process.returncode if process.returncode is not None else -1,
        )
        logger.debug(
            'git_command_completed',
            subcommand=subcommand,
            args=args,
            exit_code=result.exit_code,
            duration=time.monotonic() - start,
        )
        return result

    async def _communicate(self, process, subcommand: str, args: List[str]):
        stdout, stderr = await asyncio.gather(
            self._read_bounded(process.stdout, subcommand, args),
            self._read_bounded(process.stderr, subcommand, args),
        )
        await process.wait()
        return stdout, stderr

    async def _read_bounded(self, stream, subcommand: str, args: List[str]) -> bytes:
        """Read a stream to EOF, failing once it exceeds the output limit"""
        if stream is None:
            return b''

        chunks = []
        size = 0
        while True:
            chunk = await stream.read(65536)
            if not chunk:
                break
            size += len(chunk)
            if size > self.max_output_bytes:
                raise GitOutputLimitError(subcommand, args, self.max_output_bytes)
            chunks.append(chunk)
        return b''.join(chunks)

    async def _kill(self, process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass  # Process already dead
        await process.wait()

    def _effective_timeout(self, timeout_ms: Optional[int]) -> int:
        if not timeout_ms or timeout_ms <= 0:
            timeout_ms = self.timeout_ms
        return min(timeout_ms, MAX_TIMEOUT_MS)
