"""CLI context management."""

import asyncio
from dataclasses import dataclass
from typing import Awaitable, TypeVar

from statusline_git.cli.utils.output import OutputFormatter
from statusline_git.core.git.info_service import GitInfoService

T = TypeVar("T")


@dataclass
class CLIContext:
    """Context object passed through CLI commands."""

    service: GitInfoService
    formatter: OutputFormatter

    def run(self, awaitable: Awaitable[T]) -> T:
        """
        Run a service coroutine to completion.

        Each command gets its own event loop; the service holds no loop-bound
        state between commands.
        """
        async def _wrapper() -> T:
            return await awaitable

        return asyncio.run(_wrapper())
