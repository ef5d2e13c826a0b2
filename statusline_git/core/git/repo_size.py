"""Repository size heuristic"""
import asyncio
import os
from pathlib import Path
from typing import Optional

from statusline_git.infrastructure.logging import get_logger

from .command_builder import GitCommandBuilder
from .command_executor import GitCommandExecutor
from .git_types import GitOutputLimitError
from .operation_detector import resolve_git_dir
from .output_parser import non_empty_lines, parse_count

logger = get_logger(__name__)


def directory_size(path: Path, stop_after: Optional[int] = None) -> int:
    """
    Total size of the files below a directory

    Args:
        path: Directory to measure
        stop_after: Stop walking once the total exceeds this many bytes

    Returns:
        Size in bytes (0 if the directory does not exist)
    """
    total = 0
    for dirpath, dirnames, filenames in os.walk(path):
        for filename in filenames:
            try:
                total += os.lstat(os.path.join(dirpath, filename)).st_size
            except OSError:
                pass
            if stop_after is not None and total > stop_after:
                return total
    return total


class RepositorySizeProbe:
    """
    Decides once whether a working tree is "large"

    The answer is memoized for the lifetime of the probe; `reset()` forces
    a new evaluation. A probe may be awaited from successive event loops.
    """

    LARGE_COMMIT_COUNT = 10_000
    LARGE_OBJECTS_BYTES = 100 * 1024 * 1024
    PROBE_TIMEOUT_MS = 2000

    def __init__(
        self,
        executor: GitCommandExecutor,
        working_dir: Path,
        file_threshold: int = 10_000,
    ):
        self.executor = executor
        self.working_dir = Path(working_dir)
        self.file_threshold = file_threshold
        self.builder = GitCommandBuilder()
        self._is_large: Optional[bool] = None
        self._lock: Optional[asyncio.Lock] = None
        self._lock_loop: Optional[asyncio.AbstractEventLoop] = None

    @property
    def evaluated(self) -> bool:
        return self._is_large is not None

    def reset(
        self,
        working_dir: Optional[Path] = None,
        file_threshold: Optional[int] = None,
    ) -> None:
        if working_dir is not None:
            self.working_dir = Path(working_dir)
        if file_threshold is not None:
            self.file_threshold = file_threshold
        self._is_large = None

    async def is_large_repository(self) -> bool:
        if self._is_large is None:
            async with self._evaluation_lock():
                if self._is_large is None:
                    self._is_large = await self._evaluate()
        return self._is_large

    async def commit_count(self) -> Optional[int]:
        result = await self._probe(self.builder.count_all_commits())
        return parse_count(result.stdout) if result.success else None

    async def tracked_file_count(self) -> Optional[int]:
        result = await self._probe(self.builder.tracked_files())
        return len(non_empty_lines(result.stdout)) if result.success else None

    async def objects_size(self) -> Optional[int]:
        result = await self._probe(self.builder.git_dir())
        if not result.success:
            return None
        objects_dir = resolve_git_dir(result.stdout, self.working_dir) / 'objects'
        return await asyncio.to_thread(
            directory_size, objects_dir, self.LARGE_OBJECTS_BYTES
        )

    async def _evaluate(self) -> bool:
        commits, files, size = await asyncio.gather(
            self.commit_count(),
            self.tracked_file_count(),
            self.objects_size(),
            return_exceptions=True,
        )

        # A path list larger than the output limit is above any file threshold
        files_overflowed = isinstance(files, GitOutputLimitError)

        signals = {'commits': commits, 'files': files, 'objects_bytes': size}
        for name, value in signals.items():
            if isinstance(value, BaseException):
                if not (name == 'files' and files_overflowed):
                    logger.debug('repository_size_probe_failed', probe=name, error=str(value))
                signals[name] = None

        is_large = (
            files_overflowed
            or (signals['commits'] is not None and signals['commits'] > self.LARGE_COMMIT_COUNT)
            or (signals['files'] is not None and signals['files'] > self.file_threshold)
            or (signals['objects_bytes'] is not None
                and signals['objects_bytes'] > self.LARGE_OBJECTS_BYTES)
        )

        logger.debug(
            'repository_size_evaluated',
            working_dir=str(self.working_dir),
            is_large=is_large,
            files_overflowed=files_overflowed,
            **signals,
        )
        return is_large

    def _evaluation_lock(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self._lock is None or self._lock_loop is not loop:
            self._lock = asyncio.Lock()
            self._lock_loop = loop
        return self._lock

    async def _probe(self, command):
        return await self.executor.run(
            command[0],
            command[1:],
            cwd=self.working_dir,
            timeout_ms=self.PROBE_TIMEOUT_MS,
            ignore_errors=True,
        )
