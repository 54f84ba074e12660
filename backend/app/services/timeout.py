"""Deadline enforcement for external calls."""
import asyncio
from typing import Awaitable, TypeVar

from app.errors import GenerationTimeoutError

T = TypeVar("T")


async def run_with_timeout(work: Awaitable[T], deadline: float) -> T:
    """
    Await ``work`` for at most ``deadline`` seconds.

    The work is cancelled when the deadline passes and
    ``GenerationTimeoutError`` is raised in its place. Other failures
    propagate unchanged.
    """
    try:
        return await asyncio.wait_for(work, timeout=deadline)
    except asyncio.TimeoutError:
        raise GenerationTimeoutError(deadline) from None
