"""Git command construction only"""
from typing import List

# Fields of the latest commit, separated by the ASCII unit separator
LOG_FIELD_SEPARATOR = '\x1f'
LOG_FORMAT = '%H%x1f%h%x1f%s%x1f%at%x1f%an'


class GitCommandBuilder:
    """Handles Git command construction only"""

    @staticmethod
    def git_dir() -> List[str]:
        """
        Build command to locate the git directory

        Returns:
            Command arguments
        """
        return ['rev-parse', '--git-dir']

    @staticmethod
    def current_branch() -> List[str]:
        """Abbreviated name of HEAD ('HEAD' when detached)"""
        return ['rev-parse', '--abbrev-ref', 'HEAD']

    @staticmethod
    def symbolic_head() -> List[str]:
        """Branch HEAD points at, even before the first commit"""
        return ['symbolic-ref', '--short', 'HEAD']

    @staticmethod
    def upstream() -> List[str]:
        return ['rev-parse', '--abbrev-ref', '@{upstream}']

    @staticmethod
    def ahead_behind(upstream: str, ref: str = 'HEAD') -> List[str]:
        """
        Build left/right commit count between upstream and a ref

        Args:
            upstream: Upstream ref (left side, counts commits behind)
            ref: Local ref (right side, counts commits ahead)

        Returns:
            Command arguments
        """
        return ['rev-list', '--count', '--left-right', f'{upstream}...{ref}']

    @staticmethod
    def porcelain_status() -> List[str]:
        return ['status', '--porcelain']

    @staticmethod
    def latest_commit() -> List[str]:
        return ['log', '-1', f'--format={LOG_FORMAT}']

    @staticmethod
    def latest_tag() -> List[str]:
        return ['describe', '--tags', '--abbrev=0']

    @staticmethod
    def count_commits(rev_range: str = 'HEAD') -> List[str]:
        """
        Build commit count for a revision or range

        Args:
            rev_range: Revision or range such as 'v1.0..HEAD'

        Returns:
            Command arguments
        """
        return ['rev-list', '--count', rev_range]

    @staticmethod
    def count_all_commits() -> List[str]:
        return ['rev-list', '--all', '--count']

    @staticmethod
    def stash_list() -> List[str]:
        return ['stash', 'list']

    @staticmethod
    def tracked_files() -> List[str]:
        return ['ls-files']
