"""Git information service.

Answers branch, working-status, operation, version and stash queries for one
working directory, individually or as a single aggregate. Every query goes
through a per-instance TTL cache whose lifetimes stretch for large
repositories, and every failure degrades to a typed empty value instead of
propagating to the caller.
"""

import asyncio
from dataclasses import replace
from pathlib import Path
from typing import (
    Any,
    Awaitable,
    Callable,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    TypeVar,
    Union,
)

from statusline_git.core.config import GitServiceConfig
from statusline_git.infrastructure.logging import get_logger
from statusline_git.infrastructure.metrics import git_subquery_failures_total

from .cache import Clock, GitCache
from .command_builder import GitCommandBuilder
from .command_executor import GitCommandExecutor
from .git_types import (
    INFO_CATEGORIES,
    ExecResult,
    GitBranchInfo,
    GitCacheKey,
    GitCacheStats,
    GitError,
    GitInfo,
    GitOperationStatus,
    GitStashInfo,
    GitVersionInfo,
    GitWorkingStatus,
)
from .operation_detector import detect_operation, resolve_git_dir
from .output_parser import (
    parse_count,
    parse_latest_commit,
    parse_left_right_counts,
    parse_porcelain_status,
    parse_stash_list,
)
from .repo_size import RepositorySizeProbe

logger = get_logger(__name__)

T = TypeVar('T')

CATEGORY_KEYS = {
    'branch': GitCacheKey.BRANCH_INFO,
    'status': GitCacheKey.WORKING_STATUS,
    'operation': GitCacheKey.OPERATION_STATUS,
    'version': GitCacheKey.VERSION_INFO,
    'stash': GitCacheKey.STASH_INFO,
}

# TTL multipliers over the configured base duration
SMALL_REPO_TTL = {
    'branch': 1, 'status': 1, 'operation': 1, 'version': 1, 'stash': 1, 'aggregate': 2,
}
LARGE_REPO_TTL = {
    'branch': 6, 'status': 2, 'operation': 1, 'version': 12, 'stash': 6, 'aggregate': 8,
}


class GitInfoService:
    """Read-only Git information for a single working directory"""

    def __init__(
        self,
        config: Union[GitServiceConfig, Mapping[str, Any], None] = None,
        *,
        executor: Optional[GitCommandExecutor] = None,
        clock: Optional[Clock] = None,
    ):
        """
        Initialize service

        Args:
            config: Service configuration, or a mapping validated into one
            executor: Git command executor
            clock: Monotonic clock used by the cache
        """
        if config is None:
            config = GitServiceConfig()
        elif not isinstance(config, GitServiceConfig):
            config = GitServiceConfig.model_validate(dict(config))

        self.config = config
        self.executor = executor or GitCommandExecutor(timeout_ms=config.timeout_ms)
        self.builder = GitCommandBuilder()
        self.cache = GitCache(config.cache, clock=clock)
        self.size_probe = RepositorySizeProbe(
            self.executor,
            config.working_dir,
            file_threshold=config.features.large_repo_threshold,
        )

    # ------------------------------------------------------------------
    # Aggregate
    # ------------------------------------------------------------------

    async def get_git_info(
        self,
        force_refresh: bool = False,
        only: Optional[Iterable[str]] = None,
        skip: Optional[Iterable[str]] = None,
    ) -> GitInfo:
        """
        Get a complete snapshot

        Args:
            force_refresh: Bypass every cache and the large-repo shortcuts
            only: Categories to fetch (default: all)
            skip: Categories to leave out

        Returns:
            GitInfo with every field present; categories that failed or were
            not requested hold their empty values
        """
        categories = self._requested_categories(only, skip)

        if not force_refresh:
            cached = self.cache.get(GitCacheKey.FULL_INFO)
            if cached is not None:
                return cached.filtered(categories)

        if not await self.is_git_repo():
            return GitInfo.empty()

        is_large = await self.is_large_repository()
        features = self.config.features

        queries: Dict[str, Awaitable[Any]] = {}
        if 'branch' in categories:
            queries['branch'] = self.get_branch_info(force_refresh)
        if 'status' in categories:
            queries['status'] = self.get_working_status(force_refresh)
        if 'operation' in categories and features.fetch_operation:
            queries['operation'] = self.get_operation_status(force_refresh)
        if 'version' in categories and features.fetch_version and (not is_large or force_refresh):
            queries['version'] = self.get_version_info(force_refresh)
        if 'stash' in categories and features.fetch_stash:
            queries['stash'] = self.get_stash_info(force_refresh)

        outcomes = await asyncio.gather(*queries.values(), return_exceptions=True)
        results = dict(zip(queries, outcomes))

        info = GitInfo(
            is_repo=True,
            branch=self._outcome(results, 'branch', GitBranchInfo.empty),
            status=self._outcome(results, 'status', GitWorkingStatus.empty),
            operation=self._outcome(results, 'operation', GitOperationStatus.empty),
            version=self._outcome(results, 'version', GitVersionInfo.empty),
            stash=self._outcome(results, 'stash', GitStashInfo.empty),
        )

        # A restricted fetch is not a complete snapshot
        if len(categories) == len(INFO_CATEGORIES):
            self.cache.set(
                GitCacheKey.FULL_INFO, info, self.cache_ttl_ms('aggregate', is_large)
            )
        return info.filtered(categories)

    # ------------------------------------------------------------------
    # Per-category queries
    # ------------------------------------------------------------------

    async def get_branch_info(self, force_refresh: bool = False) -> GitBranchInfo:
        return await self._cached_query(
            'branch', lambda: self._fetch_branch_info(force_refresh),
            GitBranchInfo.empty, force_refresh,
        )

    async def get_working_status(self, force_refresh: bool = False) -> GitWorkingStatus:
        return await self._cached_query(
            'status', self._fetch_working_status, GitWorkingStatus.empty, force_refresh
        )

    async def get_operation_status(self, force_refresh: bool = False) -> GitOperationStatus:
        return await self._cached_query(
            'operation', self._fetch_operation_status, GitOperationStatus.empty, force_refresh
        )

    async def get_version_info(self, force_refresh: bool = False) -> GitVersionInfo:
        return await self._cached_query(
            'version', self._fetch_version_info, GitVersionInfo.empty, force_refresh
        )

    async def get_stash_info(self, force_refresh: bool = False) -> GitStashInfo:
        return await self._cached_query(
            'stash', self._fetch_stash_info, GitStashInfo.empty, force_refresh
        )

    async def is_git_repo(self) -> bool:
        """Uncached check that the working directory is inside a repository"""
        try:
            result = await self._git(self.builder.git_dir())
        except GitError:
            return False
        return result.success

    async def is_large_repository(self) -> bool:
        try:
            return await self.size_probe.is_large_repository()
        except Exception as e:
            logger.debug('repository_size_check_failed', error=str(e))
            return False

    def cache_ttl_ms(self, category: str, is_large: bool) -> int:
        """TTL for a category ('aggregate' for the full snapshot)"""
        multipliers = LARGE_REPO_TTL if is_large else SMALL_REPO_TTL
        return self.config.cache.duration_ms * multipliers[category]

    # ------------------------------------------------------------------
    # Management
    # ------------------------------------------------------------------

    def clear_cache(self) -> None:
        self.cache.clear()

    def update_config(self, changes: Union[GitServiceConfig, Mapping[str, Any]]) -> bool:
        """
        Apply a partial configuration

        Args:
            changes: Nested mapping such as {'cache': {'enabled': False}},
                or a complete GitServiceConfig

        Returns:
            True if the configuration changed
        """
        if isinstance(changes, GitServiceConfig):
            new_config = changes
        else:
            new_config = self.config.merged(changes)

        if new_config == self.config:
            return False

        old_config = self.config
        self.config = new_config
        self.cache.configure(new_config.cache)
        # Feature flags shape the aggregate
        self.cache.delete(GitCacheKey.FULL_INFO)

        if new_config.working_dir != old_config.working_dir:
            self.cache.clear()
            self.size_probe.reset(
                working_dir=new_config.working_dir,
                file_threshold=new_config.features.large_repo_threshold,
            )
        elif (new_config.features.large_repo_threshold
                != old_config.features.large_repo_threshold):
            self.size_probe.reset(file_threshold=new_config.features.large_repo_threshold)

        logger.debug(
            'git_service_config_updated',
            working_dir=str(new_config.working_dir),
            cache_enabled=new_config.cache.enabled,
        )
        return True

    def get_cache_stats(self) -> GitCacheStats:
        return self.cache.stats()

    # ------------------------------------------------------------------
    # Fetchers
    # ------------------------------------------------------------------

    async def _fetch_branch_info(self, force_refresh: bool) -> GitBranchInfo:
        result = await self._git(self.builder.current_branch(), ignore_errors=True)
        if result.success:
            current = result.stdout.strip()
        else:
            # No commits yet: HEAD still names a branch
            current = (await self._git(self.builder.symbolic_head())).stdout.strip()

        info = GitBranchInfo(current=current, detached=current == 'HEAD')
        if info.detached or not self.config.features.fetch_comparison:
            return info
        if not force_refresh and await self.is_large_repository():
            return info

        upstream_result = await self._git(self.builder.upstream(), ignore_errors=True)
        upstream = upstream_result.stdout.strip() if upstream_result.success else ''
        if not upstream:
            return info

        info = replace(info, upstream=upstream)
        try:
            counts = await self._git(self.builder.ahead_behind(upstream))
            behind, ahead = parse_left_right_counts(counts.stdout)
        except (GitError, ValueError) as e:
            logger.debug('git_ahead_behind_failed', upstream=upstream, error=str(e))
            return info
        return replace(info, ahead=ahead, behind=behind)

    async def _fetch_working_status(self) -> GitWorkingStatus:
        result = await self._git(self.builder.porcelain_status())
        return parse_porcelain_status(result.stdout)

    async def _fetch_operation_status(self) -> GitOperationStatus:
        result = await self._git(self.builder.git_dir())
        return detect_operation(resolve_git_dir(result.stdout, self.config.working_dir))

    async def _fetch_version_info(self) -> GitVersionInfo:
        commit, tag = await asyncio.gather(
            self._git(self.builder.latest_commit()),
            self._git(self.builder.latest_tag(), ignore_errors=True),
            return_exceptions=True,
        )
        if isinstance(commit, BaseException):
            raise commit

        info = parse_latest_commit(commit.stdout)

        latest_tag = tag.stdout.strip() if isinstance(tag, ExecResult) and tag.success else ''
        if latest_tag:
            info = replace(info, latest_tag=latest_tag)
            try:
                count = await self._git(self.builder.count_commits(f'{latest_tag}..HEAD'))
                info = replace(info, commits_since_tag=parse_count(count.stdout))
            except (GitError, ValueError) as e:
                logger.debug('git_commits_since_tag_failed', tag=latest_tag, error=str(e))
        return info

    async def _fetch_stash_info(self) -> GitStashInfo:
        result = await self._git(self.builder.stash_list())
        return parse_stash_list(result.stdout)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _cached_query(
        self,
        category: str,
        fetch: Callable[[], Awaitable[T]],
        empty: Callable[[], T],
        force_refresh: bool,
    ) -> T:
        key = CATEGORY_KEYS[category]
        if not force_refresh:
            cached = self.cache.get(key)
            if cached is not None:
                return cached

        try:
            value = await fetch()
        except Exception as e:
            logger.debug(
                'git_subquery_failed',
                category=category,
                error_type=type(e).__name__,
                error=str(e),
            )
            git_subquery_failures_total.labels(category=category).inc()
            return empty()

        is_large = await self.is_large_repository()
        self.cache.set(key, value, self.cache_ttl_ms(category, is_large))
        return value

    async def _git(
        self,
        command: List[str],
        ignore_errors: bool = False,
    ) -> ExecResult:
        return await self.executor.run(
            command[0],
            command[1:],
            cwd=self.config.working_dir,
            timeout_ms=self.config.timeout_ms,
            ignore_errors=ignore_errors,
        )

    def _outcome(self, results: Dict[str, Any], category: str, empty: Callable[[], T]) -> T:
        outcome = results.get(category)
        if outcome is None:
            return empty()
        if isinstance(outcome, BaseException):
            logger.debug('git_subquery_failed', category=category, error=str(outcome))
            git_subquery_failures_total.labels(category=category).inc()
            return empty()
        return outcome

    @staticmethod
    def _requested_categories(
        only: Optional[Iterable[str]], skip: Optional[Iterable[str]]
    ) -> List[str]:
        only_set = set(only) if only is not None else None
        skip_set = set(skip or ())
        return [
            category
            for category in INFO_CATEGORIES
            if (only_set is None or category in only_set) and category not in skip_set
        ]


def create_git_service(
    config: Union[GitServiceConfig, Mapping[str, Any], None] = None,
    **kwargs: Any,
) -> GitInfoService:
    """Create a Git information service"""
    return GitInfoService(config, **kwargs)


def create_lightweight_git_service(
    cwd: Union[str, Path, None] = None, timeout_ms: int = 1000
) -> GitInfoService:
    """Branch and working status only, with a short cache"""
    return GitInfoService({
        'timeout_ms': timeout_ms,
        'working_dir': cwd or Path.cwd(),
        'cache': {
            'enabled': True,
            'duration_ms': 3000,
            'cache_types': {'branch': True, 'status': True, 'version': False, 'stash': False},
        },
        'features': {
            'fetch_comparison': False,
            'fetch_stash': False,
            'fetch_operation': False,
            'fetch_version': False,
        },
    })


def create_high_performance_git_service(
    cwd: Union[str, Path, None] = None, timeout_ms: int = 2000
) -> GitInfoService:
    """Every feature enabled, with a longer cache"""
    return GitInfoService({
        'timeout_ms': timeout_ms,
        'working_dir': cwd or Path.cwd(),
        'cache': {'enabled': True, 'duration_ms': 10000},
    })
