from collections.abc import Callable
from runnables.util import cli
from runnables.util.bulkheads import run_bulkhead_call
import os
from typing import List


class ListenableMixin:
    """
    Mixin for objects that have a listener list.
    
    Listeners are plain objects. A listener receives an event named `foo`
    only if it defines a method named `foo`, and that method must be
    decorated with one of the @capture_crashes_to* decorators so that a
    misbehaving listener cannot abort the notifier.
    """
    _WARN_IF_LEAKING_LISTENERS = \
        os.environ.get('RUNNABLES_LEAKING_LISTENER_WARNINGS', 'False') == 'True'
    
    def __init__(self, *args, **kwargs) -> None:
        self.listeners = []  # type: List[object]
        super().__init__(*args, **kwargs)
    
    def _notify_listeners(self, event_name: str, *args: object) -> None:
        # Iterate over a copy so that listeners may unsubscribe while notified
        for lis in list(self.listeners):
            handler = getattr(lis, event_name, None)  # type: Callable[..., object] | None
            if handler is not None:
                run_bulkhead_call(handler, *args)
    
    def __del__(self) -> None:
        if self._WARN_IF_LEAKING_LISTENERS:
            if getattr(self, 'listeners', None):
                cli.print_warning(
                    f'*** Listenable object {self!r} still had listeners '
                        f'when it was finalized: {self.listeners!r}')
