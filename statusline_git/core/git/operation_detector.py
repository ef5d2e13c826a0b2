"""Detection of in-progress Git operations from marker files"""
import re
from pathlib import Path
from typing import Optional, Union

from .git_types import GitOperationStatus, GitOperationType

_MERGE_BRANCH = re.compile(r"Merge branch '([^']+)'")


def resolve_git_dir(raw: str, working_dir: Union[str, Path]) -> Path:
    """Make the output of `rev-parse --git-dir` absolute"""
    git_dir = Path(raw.strip())
    if not git_dir.is_absolute():
        git_dir = Path(working_dir) / git_dir
    return git_dir


def detect_operation(git_dir: Union[str, Path]) -> GitOperationStatus:
    """
    Classify the operation in progress in a git directory.

    Markers are checked in a fixed order and the first match wins, so a
    single state is reported even when several markers coexist (a merge
    left inside a rebase reports Merge):

        MERGE_HEAD        -> merge
        rebase-merge/     -> rebase
        rebase-apply/     -> am (with 'applying') or am-rebase
        CHERRY_PICK_HEAD  -> cherry-pick
        REVERT_HEAD       -> revert
        BISECT_LOG        -> bisect
    """
    git_dir = Path(git_dir)

    if (git_dir / 'MERGE_HEAD').exists():
        return GitOperationStatus(
            type=GitOperationType.MERGE,
            in_progress=True,
            branch=_merge_branch(_read_marker(git_dir / 'MERGE_MSG')),
            progress='Merging',
        )

    rebase_merge = git_dir / 'rebase-merge'
    if rebase_merge.is_dir():
        msgnum = _read_marker(rebase_merge / 'msgnum')
        end = _read_marker(rebase_merge / 'end')
        return GitOperationStatus(
            type=GitOperationType.REBASE,
            in_progress=True,
            branch=_short_branch(_read_marker(rebase_merge / 'head-name')),
            progress=f'{msgnum}/{end}' if msgnum and end else 'Rebasing',
        )

    rebase_apply = git_dir / 'rebase-apply'
    if rebase_apply.is_dir():
        is_am = (rebase_apply / 'applying').exists()
        next_patch = _read_marker(rebase_apply / 'next')
        last_patch = _read_marker(rebase_apply / 'last')
        if next_patch and last_patch:
            progress = f'{next_patch}/{last_patch}'
        else:
            progress = 'Applying' if is_am else 'Rebasing'
        return GitOperationStatus(
            type=GitOperationType.AM if is_am else GitOperationType.AM_REBASE,
            in_progress=True,
            branch=_short_branch(_read_marker(rebase_apply / 'head-name')),
            progress=progress,
        )

    if (git_dir / 'CHERRY_PICK_HEAD').exists():
        return GitOperationStatus(
            type=GitOperationType.CHERRY_PICK, in_progress=True, progress='Cherry-picking'
        )

    if (git_dir / 'REVERT_HEAD').exists():
        return GitOperationStatus(
            type=GitOperationType.REVERT, in_progress=True, progress='Reverting'
        )

    if (git_dir / 'BISECT_LOG').exists():
        return GitOperationStatus(
            type=GitOperationType.BISECT, in_progress=True, progress='Bisecting'
        )

    return GitOperationStatus()


def _read_marker(path: Path) -> Optional[str]:
    try:
        return path.read_text(encoding='utf-8', errors='replace').strip() or None
    except OSError:
        return None


def _short_branch(head_name: Optional[str]) -> Optional[str]:
    if not head_name:
        return None
    return head_name[len('refs/heads/'):] if head_name.startswith('refs/heads/') else head_name


def _merge_branch(merge_msg: Optional[str]) -> Optional[str]:
    if not merge_msg:
        return None
    match = _MERGE_BRANCH.search(merge_msg)
    return match.group(1) if match else None
