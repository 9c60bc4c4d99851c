"""Helpers for driving the async cluster layer from sync code."""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any, TypeVar

T = TypeVar("T")


def run_sync(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async coroutine in a blocking sync context.

    Used by the CLI to drive the release supervisor.

    Args:
        coro: The coroutine to execute

    Returns:
        The result of the coroutine

    Example:
        from helmguard.infra.k8s import get_cluster_accessor, run_sync

        accessor = get_cluster_accessor()
        exists = run_sync(accessor.namespace_exists("prod"))
    """
    try:
        loop = asyncio.get_running_loop()
    except RuntimeError:
        # No running loop, create a new one
        return asyncio.run(coro)
    else:
        if loop.is_running():
            # Run on a fresh loop in a worker thread to avoid blocking
            import concurrent.futures

            with concurrent.futures.ThreadPoolExecutor() as pool:
                future = pool.submit(asyncio.run, coro)
                return future.result()
        return loop.run_until_complete(coro)
