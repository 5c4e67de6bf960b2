"""
Bulkheads contain crashes (unhandled exceptions) so that a failure while
handling one notification cannot take down the host process or abort
unrelated work.

A notification handler that should never propagate exceptions to the host
is decorated with @capture_crashes_to_stderr. An object that can crash (such as
a test run that could not be started) records why in its `crash_reason`,
as a Bulkhead.
"""

from collections.abc import Callable
from functools import wraps
from runnables.util import cli
import sys
import traceback
from typing import overload, Protocol, TypeVar
from typing_extensions import ParamSpec

_P = ParamSpec('_P')
_R = TypeVar('_R')
_RT = TypeVar('_RT')
_RF = TypeVar('_RF')


# ------------------------------------------------------------------------------
# Bulkheads

CrashReason = BaseException  # with .__traceback__ set to a TracebackType


class Bulkhead(Protocol):  # abstract
    """
    A sink for unhandled exceptions (i.e. crashes).
    """
    crash_reason: CrashReason | None


@overload
def capture_crashes_to_stderr(
        func: Callable[_P, _RT]
        ) -> Callable[_P, _RT | None]:
    ...

@overload
def capture_crashes_to_stderr(
        *, return_if_crashed: _RF
        ) -> Callable[[Callable[_P, _RT]], Callable[_P, _RT | _RF]]:
    ...

def capture_crashes_to_stderr(
        func: Callable[_P, _RT] | None=None,
        *, return_if_crashed=None  # _RF
        ):
    """
    A function that captures any raised exceptions, and prints them to stderr.

    Examples:
        @capture_crashes_to_stderr
        def data_update_did_arrive(params: object) -> None:
            ...
    """
    def decorate(func: Callable[_P, _RT]) -> Callable[_P, _RT | _RF]:
        @wraps(func)
        @_mark_bulkhead_call
        def bulkhead_call(*args: _P.args, **kwargs: _P.kwargs) -> _RT | _RF:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                _print_bulkhead_exception(e)
                return return_if_crashed
        return bulkhead_call
    if func is None:
        return decorate
    else:
        return decorate(func)


def _mark_bulkhead_call(bulkhead_call: Callable[_P, _R]) -> Callable[_P, _R]:
    bulkhead_call._captures_crashes = True  # type: ignore[attr-defined]
    return bulkhead_call


def _print_bulkhead_exception(e: BaseException) -> None:
    lines = ['Exception in bulkhead:\n']
    lines.extend(traceback.format_exception(type(e), e, e.__traceback__))
    print(cli.colorize(cli.TERMINAL_FG_RED, ''.join(lines).rstrip('\n')), file=sys.stderr)
    sys.stderr.flush()


def run_bulkhead_call(
        bulkhead_call: Callable[_P, _R],
        /, *args: _P.args,
        **kwargs: _P.kwargs
        ) -> '_R':
    """
    Calls a function marked as @capture_crashes_to*,
    which does not reraise exceptions from its interior.

    Raises AssertionError if the specified function is not actually
    marked with @capture_crashes_to*.
    """
    if not is_bulkhead_call(bulkhead_call):
        raise AssertionError(
            f'Expected callable {bulkhead_call!r} to be decorated with @capture_crashes_to*')
    return bulkhead_call(*args, **kwargs)


def is_bulkhead_call(callable: Callable) -> bool:
    """
    Returns whether the specified function is marked with @capture_crashes_to*.
    """
    return getattr(callable, '_captures_crashes', False) == True


# ------------------------------------------------------------------------------
