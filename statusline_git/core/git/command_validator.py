"""Git command validation only"""
import re
from typing import Iterable, List, Sequence

from .git_types import GitSecurityError


class GitCommandValidator:
    """Validates read-only Git commands before anything is spawned"""

    # Whitelisted read-only Git commands
    ALLOWED_COMMANDS = frozenset({
        'status', 'log', 'branch', 'rev-parse', 'rev-list', 'describe',
        'stash', 'diff', 'show', 'config', 'symbolic-ref', 'merge-base',
        'cat-file', 'ls-files', 'show-ref',
    })

    # Whitelisted flags; '--name=value' is matched on '--name'
    ALLOWED_FLAGS = frozenset({
        '--porcelain', '--short', '--long', '--count', '--oneline',
        '--abbrev-ref', '--abbrev', '--left-right', '--no-merges', '--list',
        '--show-current', '--show-toplevel', '--git-dir', '--is-inside-work-tree',
        '--verify', '--symbolic-full-name', '--all', '--local', '--remote',
        '--merged', '--no-merged', '--tags', '--format', '--pretty', '--graph',
        '--decorate', '--date', '--author', '--grep', '--since', '--until',
        '--max-count', '--name-only', '--name-status', '--stat', '--numstat',
        '--shortstat', '--dirstat', '--summary', '--patch', '--no-patch',
        '--cached', '--untracked-files', '--get', '--get-regexp', '--',
        '-n', '-1', '-2', '-3', '-4', '-5', '-v', '-a', '-q', '-r', '-z',
        '-s', '-u', '-e', '-t', '-l',
    })

    CONFIG_READ_FLAGS = frozenset({'--get', '--get-regexp', '--list', '-l'})

    MAX_ARG_LENGTH = 1000

    DANGEROUS_PATTERNS = (
        re.compile(r'[;&|`$(){}\[\]<>]'),  # Shell metacharacters
        re.compile(r'\.\.'),               # Path traversal
        re.compile(r'\s'),                 # Whitespace (should be separate args)
    )

    COMPOSITION_OPERATORS = ('|', '&&', '||', ';', '>', '<', '`', '$(')

    # A ref component may not start with '.' and may not contain '..'
    _REF = r'[A-Za-z0-9_][A-Za-z0-9_.-]*(?:/[A-Za-z0-9_][A-Za-z0-9_.-]*)*'
    _REF_PATTERNS = (
        re.compile(rf'^{_REF}$'),                       # main, origin/main, v1.2.0
        re.compile(r'^[0-9a-fA-F]{4,40}$'),             # object ids
        re.compile(r'^HEAD$'),
        re.compile(r'^HEAD~\d+$'),                      # HEAD~3
        re.compile(r'^HEAD\^\d*$'),                     # HEAD^, HEAD^2
        re.compile(r'^@\{(?:upstream|u)\}$'),           # @{upstream}, @{u}
        re.compile(r'^@\{-\d+\}$'),                     # @{-1}
        re.compile(rf'^{_REF}@\{{\d{{4}}-\d{{2}}-\d{{2}}\}}$'),  # main@{2024-01-01}
        re.compile(rf'^{_REF}@\{{\d+\}}$'),             # stash@{0}
    )

    def validate(self, subcommand: str, args: Sequence[str]) -> None:
        """
        Validate a subcommand and its arguments

        Args:
            subcommand: Git subcommand (e.g. 'rev-parse')
            args: Arguments after the subcommand

        Raises:
            GitSecurityError: If anything is not allowed
        """
        self.validate_command(subcommand)
        self.validate_arguments(args)
        self._validate_read_only(subcommand, args)

    def validate_command(self, subcommand: str) -> None:
        if not isinstance(subcommand, str) or not subcommand:
            raise GitSecurityError('Invalid command type', subcommand)
        if subcommand not in self.ALLOWED_COMMANDS:
            raise GitSecurityError('Command not in whitelist', subcommand)

    def validate_arguments(self, args: Iterable[str]) -> None:
        for arg in args:
            self.validate_argument(arg)

    def validate_argument(self, arg: str) -> None:
        if not isinstance(arg, str):
            raise GitSecurityError('Invalid argument type', repr(arg))

        # Check argument length (DoS)
        if len(arg) > self.MAX_ARG_LENGTH:
            raise GitSecurityError('Argument too long', f'{arg[:50]}...')

        if arg.startswith('-'):
            name, sep, value = arg.partition('=')
            if name not in self.ALLOWED_FLAGS:
                raise GitSecurityError('Git flag not in whitelist', arg)
            if sep and self._is_dangerous(value):
                raise GitSecurityError('Flag value contains dangerous patterns', arg)
            return

        # Git's own syntax skips the dangerous pattern check
        if self.is_valid_reference(arg):
            return

        if self._is_dangerous(arg):
            raise GitSecurityError('Argument contains dangerous patterns', arg)

    def is_valid_reference(self, arg: str) -> bool:
        """Check whether an argument is a legitimate ref, revision or range"""
        if self._is_single_reference(arg):
            return True

        for separator in ('...', '..'):
            if separator in arg:
                parts = arg.split(separator)
                return (
                    len(parts) == 2
                    and all(self._is_single_reference(part) for part in parts)
                )
        return False

    def parse_command(self, command: str) -> List[str]:
        """
        Split a raw command string into subcommand and arguments

        Pipes and other composition operators are always rejected; callers
        that need derived values (such as a tracked file count) compute them
        from the output of a single command.

        Raises:
            GitSecurityError: If the string is empty or composes commands
        """
        if not isinstance(command, str) or not command.strip():
            raise GitSecurityError('Invalid command format', command)

        for operator in self.COMPOSITION_OPERATORS:
            if operator in command:
                raise GitSecurityError('Command composition not allowed', command)

        parts = command.split()
        if parts[0] == 'git':
            parts = parts[1:]
        if not parts:
            raise GitSecurityError('Empty command', command)

        self.validate(parts[0], parts[1:])
        return parts

    def _validate_read_only(self, subcommand: str, args: Sequence[str]) -> None:
        """Reject the write forms of subcommands that also have read forms"""
        positional = [arg for arg in args if not arg.startswith('-')]

        if subcommand == 'stash' and (not positional or positional[0] not in ('list', 'show')):
            raise GitSecurityError('Only stash list/show are allowed', ' '.join(args))
        if subcommand == 'config' and not any(
            arg.split('=', 1)[0] in self.CONFIG_READ_FLAGS for arg in args
        ):
            raise GitSecurityError('Only config reads are allowed', ' '.join(args))
        if subcommand == 'branch' and positional and '--list' not in args:
            raise GitSecurityError('Branch names require --list', ' '.join(args))
        if subcommand == 'symbolic-ref' and len(positional) > 1:
            raise GitSecurityError('symbolic-ref may only be read', ' '.join(args))

    def _is_single_reference(self, arg: str) -> bool:
        if '..' in arg:
            return False
        return any(pattern.match(arg) for pattern in self._REF_PATTERNS)

    def _is_dangerous(self, value: str) -> bool:
        return any(pattern.search(value) for pattern in self.DANGEROUS_PATTERNS)
