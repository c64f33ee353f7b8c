"""Timing helpers."""

import time
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass
class Measured(Generic[T]):
    data: T
    duration_ms: float


async def measure(awaitable: Awaitable[T]) -> Measured[T]:
    """Await ``awaitable`` and report how long it took."""
    start = time.perf_counter()
    data = await awaitable
    return Measured(data=data, duration_ms=(time.perf_counter() - start) * 1000)
