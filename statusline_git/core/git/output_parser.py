"""Parsing of git command output"""
import re
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from .command_builder import LOG_FIELD_SEPARATOR
from .git_types import (
    EPOCH,
    GitStashEntry,
    GitStashInfo,
    GitVersionInfo,
    GitWorkingStatus,
)

# Unmerged XY pairs in porcelain v1 output
CONFLICT_CODES = frozenset({'DD', 'AU', 'UD', 'UA', 'DU', 'AA', 'UU'})

_STASH_LINE = re.compile(r'^stash@\{(\d+)\}: (?:WIP on|On) ([^:]+): (.+)$')
_STASH_FALLBACK = re.compile(r'^stash@\{(\d+)\}: (.+)$')


def non_empty_lines(output: str) -> List[str]:
    return [line for line in output.splitlines() if line.strip()]


def parse_porcelain_status(output: str) -> GitWorkingStatus:
    """
    Count entries of `git status --porcelain`

    A path staged and modified again ('MM') counts as both staged and
    unstaged; ignored entries ('!!') are not counted.
    """
    staged = unstaged = untracked = conflicted = 0
    lines = [line for line in output.splitlines() if len(line) >= 2]

    for line in lines:
        code = line[:2]
        if code == '??':
            untracked += 1
        elif code == '!!':
            continue
        elif code in CONFLICT_CODES:
            conflicted += 1
        else:
            if code[0] not in (' ', '?'):
                staged += 1
            if code[1] not in (' ', '?'):
                unstaged += 1

    return GitWorkingStatus(
        clean=(staged + unstaged + untracked + conflicted) == 0,
        staged=staged,
        unstaged=unstaged,
        untracked=untracked,
        conflicted=conflicted,
    )


def parse_left_right_counts(output: str) -> Tuple[int, int]:
    """Parse 'left<TAB>right' from `rev-list --count --left-right`"""
    parts = output.split()
    left = int(parts[0]) if len(parts) > 0 else 0
    right = int(parts[1]) if len(parts) > 1 else 0
    return left, right


def parse_count(output: str) -> int:
    return int(output.strip() or 0)


def parse_latest_commit(output: str) -> GitVersionInfo:
    """Parse the latest commit line written with LOG_FORMAT"""
    fields = output.strip().split(LOG_FIELD_SEPARATOR)
    fields += [''] * (5 - len(fields))
    sha, short_sha, message, epoch, author = fields[:5]

    try:
        timestamp = datetime.fromtimestamp(int(epoch), tz=timezone.utc)
    except ValueError:
        timestamp = EPOCH

    return GitVersionInfo(
        sha=sha,
        short_sha=short_sha,
        message=message,
        timestamp=timestamp,
        author=author,
    )


def parse_stash_list(output: str) -> GitStashInfo:
    lines = non_empty_lines(output)
    return GitStashInfo(
        count=len(lines),
        latest=parse_stash_entry(lines[0]) if lines else None,
    )


def parse_stash_entry(line: str) -> Optional[GitStashEntry]:
    """
    Parse one `git stash list` line

    Formats:
        stash@{0}: WIP on main: 1234567 Commit message
        stash@{0}: On main: Description
    """
    match = _STASH_LINE.match(line.strip())
    if match:
        return GitStashEntry(
            index=int(match.group(1)),
            description=match.group(3),
            branch=match.group(2),
        )

    match = _STASH_FALLBACK.match(line.strip())
    if match:
        return GitStashEntry(
            index=int(match.group(1)),
            description=match.group(2),
            branch='unknown',
        )
    return None
