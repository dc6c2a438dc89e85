"""Process-level helpers for the nodeagent CLI: exit codes and the
bridge from typer's synchronous commands into the async lifecycle."""

import asyncio
from typing import Any, Awaitable, TypeVar

from nodeagent.exceptions import ConfigError, NodeAgentError

EXIT_SUCCESS = 0
EXIT_RUN_FAILED = 1
EXIT_CONFIG_ERROR = 2

R = TypeVar("R")


def run_async(awaitable: Awaitable[R]) -> R:
    """Drive one awaitable to completion on a fresh event loop."""

    async def _wrapper() -> Any:
        return await awaitable

    return asyncio.run(_wrapper())


def exit_code_for(error: NodeAgentError) -> int:
    """Configuration problems exit 2; every lifecycle failure exits 1."""
    if isinstance(error, ConfigError):
        return EXIT_CONFIG_ERROR
    return EXIT_RUN_FAILED
