"""Tests for the Git information service"""

from dataclasses import FrozenInstanceError

import pytest
from prometheus_client import REGISTRY
from pydantic import ValidationError

from statusline_git.core.git.command_builder import LOG_FORMAT
from statusline_git.core.git.git_types import (
    ExecResult,
    GitBranchInfo,
    GitCacheKey,
    GitCommandError,
    GitOperationType,
    GitRepoNotFoundError,
    GitStashInfo,
    GitTimeoutError,
    GitVersionInfo,
    GitWorkingStatus,
)
from statusline_git.core.git.info_service import (
    GitInfoService,
    create_git_service,
    create_high_performance_git_service,
    create_lightweight_git_service,
)

LOG_COMMAND = f"log -1 --format={LOG_FORMAT}"
LARGE_REPO = {"rev-list --all --count": "20000\n"}


@pytest.fixture
def make_service(tmp_path, fake_clock):
    """Build a service over tmp_path with a fake executor and clock"""
    def _make(executor, **config):
        return GitInfoService(
            {"working_dir": tmp_path, **config}, executor=executor, clock=fake_clock
        )
    return _make


class TestGitInfo:
    """Test the aggregate snapshot"""

    @pytest.mark.asyncio
    async def test_complete_snapshot(self, make_service, fake_executor):
        info = await make_service(fake_executor).get_git_info()

        assert info.is_repo
        assert info.branch == GitBranchInfo(
            current="main", detached=False, ahead=2, behind=1, upstream="origin/main"
        )
        assert info.status == GitWorkingStatus(
            clean=False, staged=2, unstaged=2, untracked=1, conflicted=0
        )
        assert info.operation.type == GitOperationType.NONE
        assert info.version.short_sha == "3f1c2b7"
        assert info.version.message == "Initial commit"
        assert info.version.latest_tag == "v1.0"
        assert info.version.commits_since_tag == 3
        assert info.stash.count == 2
        assert info.stash.latest.branch == "main"

    @pytest.mark.asyncio
    async def test_not_a_repository(self, make_service, make_executor):
        """Test a non-repository yields the empty snapshot instead of raising"""
        executor = make_executor(healthy=False)

        info = await make_service(executor).get_git_info()

        assert not info.is_repo
        assert info.branch.current == "no-git"
        assert info.status.clean
        assert executor.calls == ["rev-parse --git-dir"]

    @pytest.mark.asyncio
    async def test_version_failure_is_isolated(self, make_service, make_executor):
        """Test a timed-out sub-query degrades alone"""
        executor = make_executor({LOG_COMMAND: GitTimeoutError(f"git {LOG_COMMAND}", 1000, 3)})
        labels = {"category": "version"}
        before = REGISTRY.get_sample_value("statusline_git_subquery_failures_total", labels) or 0

        info = await make_service(executor).get_git_info()

        assert info.is_repo
        assert info.version == GitVersionInfo.empty()
        assert info.branch.current == "main"
        assert info.status.staged == 2
        assert info.stash.count == 2
        after = REGISTRY.get_sample_value("statusline_git_subquery_failures_total", labels)
        assert after == before + 1

    @pytest.mark.asyncio
    async def test_every_failure_degrades(self, make_service, make_executor):
        """Test the aggregate never raises even when every sub-query fails"""
        failure = GitCommandError("git", 128, "fatal: bad object HEAD")
        executor = make_executor(
            {
                "rev-parse --abbrev-ref HEAD": failure,
                "status --porcelain": failure,
                LOG_COMMAND: failure,
                "stash list": failure,
            }
        )

        info = await make_service(executor).get_git_info()

        assert info.is_repo
        assert info.branch == GitBranchInfo.empty()
        assert info.status == GitWorkingStatus.empty()
        assert info.version == GitVersionInfo.empty()
        assert info.stash == GitStashInfo.empty()

    @pytest.mark.asyncio
    async def test_aggregate_is_cached(self, make_service, fake_executor, fake_clock):
        """Test the snapshot is served from cache for twice the base TTL"""
        service = make_service(fake_executor)
        await service.get_git_info()
        calls = len(fake_executor.calls)

        await service.get_git_info()
        assert len(fake_executor.calls) == calls
        assert service.cache.entry(GitCacheKey.FULL_INFO).ttl == pytest.approx(10.0)

        fake_clock.advance(10.001)
        await service.get_git_info()
        assert len(fake_executor.calls) > calls

    @pytest.mark.asyncio
    async def test_force_refresh_bypasses_cache(self, make_service, fake_executor):
        service = make_service(fake_executor)
        await service.get_git_info()

        await service.get_git_info(force_refresh=True)

        assert fake_executor.count("status --porcelain") == 2

    @pytest.mark.asyncio
    async def test_only(self, make_service, fake_executor):
        """Test only requested categories are fetched and the shape is kept"""
        service = make_service(fake_executor)

        info = await service.get_git_info(only=["branch"])

        assert info.branch.current == "main"
        assert info.status == GitWorkingStatus.empty()
        assert info.stash == GitStashInfo.empty()
        assert fake_executor.count("status --porcelain") == 0
        assert fake_executor.count("stash list") == 0
        assert not service.cache.has(GitCacheKey.FULL_INFO)

    @pytest.mark.asyncio
    async def test_skip(self, make_service, fake_executor):
        info = await make_service(fake_executor).get_git_info(skip=["stash", "version"])

        assert info.stash == GitStashInfo.empty()
        assert info.version == GitVersionInfo.empty()
        assert info.status.untracked == 1
        assert fake_executor.count("stash list") == 0
        assert fake_executor.count(LOG_COMMAND) == 0

    @pytest.mark.asyncio
    async def test_cached_snapshot_is_filtered(self, make_service, fake_executor):
        service = make_service(fake_executor)
        await service.get_git_info()
        calls = len(fake_executor.calls)

        info = await service.get_git_info(only=["status"])

        assert len(fake_executor.calls) == calls
        assert info.status.staged == 2
        assert info.branch == GitBranchInfo.empty()

    @pytest.mark.asyncio
    async def test_feature_flags(self, make_service, fake_executor):
        """Test disabled features are neither queried nor reported"""
        service = make_service(
            fake_executor,
            features={"fetch_stash": False, "fetch_version": False, "fetch_comparison": False},
        )

        info = await service.get_git_info()

        assert info.stash == GitStashInfo.empty()
        assert info.version == GitVersionInfo.empty()
        assert info.branch.upstream is None
        assert fake_executor.count("stash list") == 0
        assert fake_executor.count(LOG_COMMAND) == 0
        assert fake_executor.count("rev-parse --abbrev-ref @{upstream}") == 0

    @pytest.mark.asyncio
    async def test_large_repository_skips_version(self, make_service, make_executor):
        """Test version and comparison are skipped for large repos unless forced"""
        executor = make_executor(LARGE_REPO)
        service = make_service(executor)

        info = await service.get_git_info()

        assert info.version == GitVersionInfo.empty()
        assert info.branch.upstream is None
        assert executor.count(LOG_COMMAND) == 0
        assert service.cache.entry(GitCacheKey.FULL_INFO).ttl == pytest.approx(40.0)

        info = await service.get_git_info(force_refresh=True)

        assert info.version.latest_tag == "v1.0"
        assert info.branch.ahead == 2


class TestBranchInfo:
    """Test the branch query"""

    @pytest.mark.asyncio
    async def test_branch_is_cached_within_ttl(self, make_service, fake_executor, fake_clock):
        """Test repeated calls share one invocation until the TTL expires"""
        service = make_service(fake_executor)

        await service.get_branch_info()
        await service.get_branch_info()
        assert fake_executor.count("rev-parse --abbrev-ref HEAD") == 1

        fake_clock.advance(5.001)
        await service.get_branch_info()
        assert fake_executor.count("rev-parse --abbrev-ref HEAD") == 2

    @pytest.mark.asyncio
    async def test_cached_results_are_immutable(self, make_service, fake_executor):
        """Test callers cannot alter what the cache hands to later callers"""
        service = make_service(fake_executor)
        first = await service.get_branch_info()
        info = await service.get_git_info()

        with pytest.raises(FrozenInstanceError):
            first.ahead = 999
        with pytest.raises(FrozenInstanceError):
            info.branch.current = "tampered"
        with pytest.raises(FrozenInstanceError):
            info.stash.latest.index = 5

        second = await service.get_branch_info()
        assert second.current == "main"
        assert second.ahead == 2
        assert fake_executor.count("rev-parse --abbrev-ref HEAD") == 1

    @pytest.mark.asyncio
    async def test_large_repository_ttl(self, make_service, make_executor):
        """Test branch results live six times the base duration in large repos"""
        service = make_service(make_executor(LARGE_REPO))

        await service.get_branch_info()

        assert service.cache.entry(GitCacheKey.BRANCH_INFO).ttl == pytest.approx(30.0)

    @pytest.mark.asyncio
    async def test_detached_head(self, make_service, make_executor):
        executor = make_executor({"rev-parse --abbrev-ref HEAD": "HEAD\n"})

        branch = await make_service(executor).get_branch_info()

        assert branch.detached
        assert branch.current == "HEAD"
        assert executor.count("rev-parse --abbrev-ref @{upstream}") == 0

    @pytest.mark.asyncio
    async def test_no_upstream(self, make_service, make_executor):
        executor = make_executor(
            {"rev-parse --abbrev-ref @{upstream}": ExecResult("", "fatal: no upstream", 128)}
        )

        branch = await make_service(executor).get_branch_info()

        assert branch.current == "main"
        assert branch.upstream is None
        assert (branch.ahead, branch.behind) == (0, 0)

    @pytest.mark.asyncio
    async def test_failed_count_keeps_upstream(self, make_service, make_executor):
        executor = make_executor(
            {"rev-list --count --left-right origin/main...HEAD": GitTimeoutError("git rev-list", 1000)}
        )

        branch = await make_service(executor).get_branch_info()

        assert branch.upstream == "origin/main"
        assert (branch.ahead, branch.behind) == (0, 0)

    @pytest.mark.asyncio
    async def test_unborn_branch(self, make_service, make_executor):
        """Test a repository without commits still reports its branch"""
        executor = make_executor(
            {
                "rev-parse --abbrev-ref HEAD": ExecResult("HEAD\n", "fatal: ambiguous argument 'HEAD'", 128),
                "symbolic-ref --short HEAD": "trunk\n",
                "rev-parse --abbrev-ref @{upstream}": ExecResult("", "fatal: no upstream", 128),
            }
        )

        branch = await make_service(executor).get_branch_info()

        assert branch.current == "trunk"
        assert not branch.detached

    @pytest.mark.asyncio
    async def test_failure_returns_empty(self, make_service, make_executor):
        executor = make_executor(healthy=False)

        assert await make_service(executor).get_branch_info() == GitBranchInfo.empty()


class TestOtherQueries:
    """Test the status, operation, version and stash queries"""

    @pytest.mark.asyncio
    async def test_operation_status(self, make_service, fake_executor, tmp_path):
        git_dir = tmp_path / ".git"
        git_dir.mkdir()
        (git_dir / "MERGE_HEAD").write_text("abc\n")
        (git_dir / "rebase-merge").mkdir()

        operation = await make_service(fake_executor).get_operation_status()

        assert operation.type == GitOperationType.MERGE
        assert operation.in_progress

    @pytest.mark.asyncio
    async def test_version_without_tag(self, make_service, make_executor):
        executor = make_executor(
            {"describe --tags --abbrev=0": ExecResult("", "fatal: No names found", 128)}
        )

        version = await make_service(executor).get_version_info()

        assert version.sha.startswith("3f1c2b7")
        assert version.latest_tag is None
        assert version.commits_since_tag is None

    @pytest.mark.asyncio
    async def test_status_failure_returns_empty(self, make_service, make_executor):
        executor = make_executor(
            {"status --porcelain": GitRepoNotFoundError("git status --porcelain", "/x")}
        )

        assert await make_service(executor).get_working_status() == GitWorkingStatus.empty()

    @pytest.mark.asyncio
    async def test_stash(self, make_service, fake_executor):
        stash = await make_service(fake_executor).get_stash_info()

        assert stash.count == 2
        assert stash.latest.index == 0

    @pytest.mark.asyncio
    async def test_uncached_category(self, make_service, fake_executor):
        """Test categories switched off in cache_types are always fetched"""
        service = make_service(fake_executor, cache={"cache_types": {"stash": False}})

        await service.get_stash_info()
        await service.get_stash_info()

        assert fake_executor.count("stash list") == 2

    @pytest.mark.asyncio
    async def test_is_git_repo(self, make_service, fake_executor, make_executor):
        assert await make_service(fake_executor).is_git_repo()
        assert not await make_service(make_executor(healthy=False)).is_git_repo()

        failing = make_executor({"rev-parse --git-dir": GitTimeoutError("git rev-parse", 1000)})
        assert not await make_service(failing).is_git_repo()


class TestConfiguration:
    """Test configuration handling"""

    @pytest.mark.asyncio
    async def test_disabling_cache_bypasses_it(self, make_service, fake_executor):
        """Test two queries after disabling the cache run two invocations"""
        service = make_service(fake_executor)
        await service.get_working_status()

        assert service.update_config({"cache": {"enabled": False}}) is True

        await service.get_working_status()
        await service.get_working_status()
        assert fake_executor.count("status --porcelain") == 3

    def test_unchanged_config(self, make_service, fake_executor):
        service = make_service(fake_executor)

        assert service.update_config({"timeout_ms": 1000}) is False
        assert service.update_config({}) is False

    def test_partial_update_keeps_other_fields(self, make_service, fake_executor):
        service = make_service(fake_executor, cache={"duration_ms": 2000})

        service.update_config({"cache": {"cache_types": {"version": False}}})

        assert service.config.cache.duration_ms == 2000
        assert service.config.cache.cache_types.version is False
        assert service.config.cache.cache_types.branch is True
        assert service.cache.config.cache_types.version is False

    @pytest.mark.asyncio
    async def test_working_dir_change_resets_state(self, make_service, fake_executor, tmp_path):
        service = make_service(fake_executor)
        await service.get_branch_info()
        await service.is_large_repository()

        other = tmp_path / "other"
        other.mkdir()
        assert service.update_config({"working_dir": other})

        assert service.get_cache_stats().total_items == 0
        assert not service.size_probe.evaluated
        assert service.size_probe.working_dir == other

    def test_invalid_config(self, make_service, fake_executor):
        with pytest.raises(ValidationError):
            make_service(fake_executor, bogus=True)

        service = make_service(fake_executor)
        with pytest.raises(ValidationError):
            service.update_config({"cache": {"unknown": 1}})

    def test_timeout_is_clamped(self, make_service, fake_executor):
        assert make_service(fake_executor, timeout_ms=120_000).config.timeout_ms == 30_000

    @pytest.mark.parametrize(
        "category,small,large",
        [
            ("branch", 5000, 30000),
            ("status", 5000, 10000),
            ("operation", 5000, 5000),
            ("version", 5000, 60000),
            ("stash", 5000, 30000),
            ("aggregate", 10000, 40000),
        ],
    )
    def test_ttl_table(self, make_service, fake_executor, category, small, large):
        service = make_service(fake_executor)

        assert service.cache_ttl_ms(category, False) == small
        assert service.cache_ttl_ms(category, True) == large

    @pytest.mark.asyncio
    async def test_cache_stats_and_clear(self, make_service, fake_executor):
        service = make_service(fake_executor)
        await service.get_working_status()
        await service.get_working_status()

        stats = service.get_cache_stats()
        assert stats.hits == 1
        assert stats.misses == 1

        service.clear_cache()
        assert service.get_cache_stats().total_items == 0


class TestFactories:
    """Test service factory helpers"""

    def test_create_git_service(self, tmp_path):
        service = create_git_service({"working_dir": tmp_path, "timeout_ms": 500})

        assert isinstance(service, GitInfoService)
        assert service.config.timeout_ms == 500

    def test_lightweight_service(self, tmp_path):
        service = create_lightweight_git_service(tmp_path)
        features = service.config.features

        assert service.config.cache.duration_ms == 3000
        assert not any(
            [features.fetch_comparison, features.fetch_stash,
             features.fetch_operation, features.fetch_version]
        )
        assert not service.config.cache.cache_types.version

    def test_high_performance_service(self, tmp_path):
        service = create_high_performance_git_service(tmp_path)

        assert service.config.cache.duration_ms == 10000
        assert service.config.timeout_ms == 2000
        assert service.config.features.fetch_version


class TestRealRepository:
    """Integration tests against the git binary"""

    @pytest.mark.asyncio
    async def test_snapshot(self, git_repo):
        service = GitInfoService({"working_dir": git_repo, "timeout_ms": 5000})

        info = await service.get_git_info()

        assert info.is_repo
        assert info.branch.current == "main"
        assert info.branch.upstream is None
        assert info.status.clean
        assert info.version.message == "Initial commit"
        assert info.version.author == "Test User"
        assert info.stash.count == 0
        assert info.operation.type == GitOperationType.NONE

    @pytest.mark.asyncio
    async def test_changes_after_refresh(self, git_repo):
        service = GitInfoService({"working_dir": git_repo, "timeout_ms": 5000})
        await service.get_git_info()

        (git_repo / "new.txt").write_text("new\n")
        (git_repo / "README.md").write_text("# Changed\n")

        cached = await service.get_working_status()
        fresh = await service.get_working_status(force_refresh=True)

        assert cached.clean
        assert fresh.untracked == 1
        assert fresh.unstaged == 1

    @pytest.mark.asyncio
    async def test_not_a_repository(self, not_a_repo):
        service = GitInfoService({"working_dir": not_a_repo, "timeout_ms": 5000})

        assert not await service.is_git_repo()
        assert not (await service.get_git_info()).is_repo
