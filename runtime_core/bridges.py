"""
Interpreter Bridge contract.

Every language maps to a factory producing a ``RuntimeHandle``. A handle
exposes exactly one operation, ``execute(source) -> RuntimeResult``, which may
be synchronous or a coroutine. The built-in bridges are all coroutines and
keep blocking work on worker threads, so an execution timeout can fire.
Callers go through ``execute_handle`` so both shapes are treated alike.

Execution failures are never raised out of a handle; they come back as a
``RuntimeResult`` carrying ``error``. Construction failures raise from the
factory and are surfaced by the registry to the requesting caller.
"""

import asyncio
import inspect
import subprocess
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Union

from .models import RuntimeResult

ExecuteReturn = Union[RuntimeResult, Awaitable[RuntimeResult]]


class RuntimeHandle(ABC):
    """Language-specific execution capability."""

    language: str = ''

    @abstractmethod
    def execute(self, code: str) -> ExecuteReturn:
        """Run ``code`` and return its output or error."""

    def describe(self) -> dict:
        return {'language': self.language, 'handle': type(self).__name__}


# A factory takes no arguments and returns a handle or an awaitable of one.
BridgeFactory = Callable[[], Union[RuntimeHandle, Awaitable[RuntimeHandle]]]


async def maybe_await(value: Any) -> Any:
    if inspect.isawaitable(value):
        return await value
    return value


async def execute_handle(handle: RuntimeHandle, code: str) -> RuntimeResult:
    """Run ``handle.execute`` whether it is sync or async."""
    return await maybe_await(handle.execute(code))


def consume_exception(task: 'asyncio.Future') -> None:
    """Done-callback marking a task's exception as retrieved; awaiting callers still receive it."""
    if not task.cancelled():
        task.exception()


def run_subprocess(*args, **kwargs) -> subprocess.CompletedProcess:
    """subprocess.run forcing UTF-8 text decoding; stray bytes are replaced, never fatal."""
    if kwargs.get('text', False) and 'encoding' not in kwargs:
        kwargs['encoding'] = 'utf-8'
        kwargs['errors'] = 'replace'
    return subprocess.run(*args, **kwargs)
