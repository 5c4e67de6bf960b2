"""
Test runs: selecting tests to run, asking the analyzer to run them,
and fanning the analyzer's status stream back onto the tests' views.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from runnables.browser.testtree import TestTree
from runnables.model import (
    iter_leaves, Node, RunInProgressError, SelectionResolutionFailure, Session,
)
from runnables.protocol.api import (
    CANCEL_TESTS, CancelTestsParams, RUN_TESTS, RunTestsParams,
)
from runnables.protocol.client import AnalyzerClient
from runnables.protocol.status import RunStatusKind, RunStatusUpdate
from runnables.ui.tree import NodeView
from runnables.util import cli
from runnables.util.bulkheads import Bulkhead, CrashReason
from runnables.util.listenable import ListenableMixin
from runnables.util.xtyping import NodeId
import os
from typing import assert_never, Dict, List, Optional, Protocol

# If True, reports every status update that is dropped
_VERBOSE_PATCHES = os.environ.get('RUNNABLES_VERBOSE_PATCHES', 'False') == 'True'


# ------------------------------------------------------------------------------
# Run Kinds & Profiles

class RunKind(Enum):
    Run = 'Run'
    Debug = 'Debug'


RUN_PROFILE = 'Usually run'
DEBUG_PROFILE = 'Usually debug'

_RUN_KIND_FOR_PROFILE = {
    RUN_PROFILE: RunKind.Run,
    DEBUG_PROFILE: RunKind.Debug,
}


def run_kind_for_profile(profile: str) -> RunKind:
    """
    Raises:
    * ValueError -- if `profile` is not a known run profile.
    """
    try:
        return _RUN_KIND_FOR_PROFILE[profile]
    except KeyError:
        raise ValueError(f'Unknown run profile: {profile!r}') from None


# ------------------------------------------------------------------------------
# RunPeer

class RunPeer(Protocol):
    """The host's handle to a run, which displays the run's progress."""
    def enqueue(self, id: NodeId) -> None: ...
    def start(self, id: NodeId) -> None: ...
    def pass_(self, id: NodeId, duration: float | None) -> None: ...
    def fail(self, id: NodeId, message: str | None, duration: float | None) -> None: ...
    def error(self, id: NodeId, message: str | None, duration: float | None) -> None: ...
    def skip(self, id: NodeId) -> None: ...
    def append_output(self, text: str) -> None: ...
    def end(self) -> None: ...


class RunHost(Protocol):
    """The host UI surface on which runs are displayed."""
    def begin_run(self,
            include: list[NodeId] | None,
            exclude: list[NodeId] | None,
            run_kind: RunKind,
            ) -> RunPeer:
        ...


# ------------------------------------------------------------------------------
# TestRun

class LeafState(Enum):
    Enqueued = 'Queued'
    Started = 'Running'
    Passed = 'Passed'
    Failed = 'Failed'
    Errored = 'Errored'
    Skipped = 'Skipped'


@dataclass(frozen=True)
class LeafResult:
    state: LeafState
    message: str | None = None
    duration: float | None = None


class RunState(Enum):
    Running = 'Running'
    Ended = 'Ended'


class TestRun(ListenableMixin, Bulkhead):
    """
    A run of a set of tests, whose progress is streamed from the analyzer.

    Each transition of a test is mirrored into the subtitle of the test's view
    and is forwarded to the host's RunPeer, if there is one.

    Listeners may implement:
    * test_run_did_end(run: TestRun)
    """
    __test__ = False  # not a test class, despite its name

    def __init__(self,
            run_kind: RunKind,
            include: Sequence[NodeId] | None=None,
            exclude: Sequence[NodeId] | None=None,
            *, peer: RunPeer | None=None,
            ) -> None:
        super().__init__()
        self.run_kind = run_kind
        self.include = list(include) if include is not None else None
        self.exclude = list(exclude) if exclude is not None else None
        self.peer = peer
        self.crash_reason = None  # type: Optional[CrashReason]
        self._state = RunState.Running
        self._result_for_id = {}  # type: Dict[NodeId, LeafResult]
        self._output = []  # type: List[str]

    # === Properties ===

    @property
    def state(self) -> RunState:
        return self._state

    @property
    def results(self) -> dict[NodeId, LeafResult]:
        """The latest result of each test in the run, in the order enqueued."""
        return dict(self._result_for_id)

    def result_for(self, node_id: NodeId) -> LeafResult | None:
        return self._result_for_id.get(node_id)

    @property
    def enqueued_ids(self) -> list[NodeId]:
        return list(self._result_for_id)

    @property
    def output(self) -> str:
        """The raw output of the run, as a transcript."""
        return ''.join(self._output)

    # === Operations ===

    def enqueue(self, view: NodeView) -> None:
        self._transition(view, LeafResult(LeafState.Enqueued))
        if self.peer is not None:
            self.peer.enqueue(view.id)

    def start(self, view: NodeView) -> None:
        self._transition(view, LeafResult(LeafState.Started))
        if self.peer is not None:
            self.peer.start(view.id)

    def pass_(self, view: NodeView, duration: float | None=None) -> None:
        self._transition(view, LeafResult(LeafState.Passed, None, duration))
        if self.peer is not None:
            self.peer.pass_(view.id, duration)

    def fail(self, view: NodeView, message: str | None=None, duration: float | None=None) -> None:
        self._transition(view, LeafResult(LeafState.Failed, message, duration))
        if self.peer is not None:
            self.peer.fail(view.id, message, duration)

    def error(self, view: NodeView, message: str | None=None, duration: float | None=None) -> None:
        self._transition(view, LeafResult(LeafState.Errored, message, duration))
        if self.peer is not None:
            self.peer.error(view.id, message, duration)

    def skip(self, view: NodeView) -> None:
        self._transition(view, LeafResult(LeafState.Skipped))
        if self.peer is not None:
            self.peer.skip(view.id)

    def append_output(self, text: str) -> None:
        self._ensure_running()
        self._output.append(text)
        if self.peer is not None:
            self.peer.append_output(text)

    def end(self) -> None:
        """
        Ends this run. Ending a run that has already ended does nothing.
        """
        if self._state == RunState.Ended:
            return
        self._state = RunState.Ended
        if self.peer is not None:
            self.peer.end()

        self._notify_listeners('test_run_did_end', self)

    def _transition(self, view: NodeView, result: LeafResult) -> None:
        self._ensure_running()
        self._result_for_id[view.id] = result
        view.subtitle = _subtitle_for(result)

    def _ensure_running(self) -> None:
        if self._state != RunState.Running:
            raise ValueError(f'{self!r} has already ended')

    # === Utility ===

    def __repr__(self) -> str:
        return f'<TestRun {self.run_kind.value} include={self.include!r} exclude={self.exclude!r}>'


def _subtitle_for(result: LeafResult) -> str:
    if result.duration is not None:
        return f'{result.state.value} ({result.duration:g} ms)'
    return result.state.value


# ------------------------------------------------------------------------------
# RunController

class RunController:
    """
    Translates run requests into `runTests` and `cancelTests` requests,
    and applies the analyzer's `runStatus` stream to the active run.

    At most one run is active at a time, since the status stream does not
    identify which run it belongs to.
    """

    def __init__(self,
            client: AnalyzerClient,
            session: Session,
            test_tree: TestTree,
            *, host: RunHost | None=None,
            ) -> None:
        self._client = client
        self._session = session
        self._test_tree = test_tree
        self._host = host
        self._active_run = None  # type: Optional[TestRun]

    # === Properties ===

    @property
    def active_run(self) -> TestRun | None:
        return self._active_run

    @property
    def is_idle(self) -> bool:
        return self._active_run is None

    # === Operations ===

    def execute(self,
            include_ids: Sequence[NodeId] | None,
            exclude_ids: Sequence[NodeId] | None,
            run_kind: RunKind,
            *, is_cancelled: Callable[[], bool] | None=None,
            ) -> TestRun:
        """
        Starts a run of every test under `include_ids` (or every test, if None),
        except the tests under `exclude_ids`.

        If any id cannot be resolved, or the analyzer cannot be asked to run
        the tests, then the returned run has already ended,
        with its `crash_reason` set.

        If `is_cancelled` returns True while tests are being enqueued then
        the returned run has already ended, and the analyzer is not asked to
        run anything.

        Raises:
        * RunInProgressError -- if another run has not yet finished.
        """
        if self._active_run is not None:
            raise RunInProgressError(
                f'Cannot start a run while {self._active_run!r} is in progress')

        include = list(include_ids) if include_ids is not None else None
        exclude = list(exclude_ids) if exclude_ids is not None else None
        run = TestRun(
            run_kind, include, exclude,
            peer=(
                self._host.begin_run(include, exclude, run_kind)
                if self._host is not None
                else None
            ))
        self._active_run = run

        # Resolve selection
        try:
            include_roots = (
                self._resolve(include)
                if include is not None
                else [self._session]
            )  # type: Sequence[Session | Node]
            exclude_roots = self._resolve(exclude) if exclude is not None else []
        except SelectionResolutionFailure as e:
            cli.print_error(f'Cannot run tests: {e}')
            self._end_run(run, crash_reason=e)
            return run

        # Enqueue every selected test
        excluded_ids = {leaf.id for root in exclude_roots for leaf in iter_leaves(root)}
        for root in include_roots:
            for leaf in iter_leaves(root):
                if is_cancelled is not None and is_cancelled():
                    self._end_run(run)
                    return run
                if leaf.id in excluded_ids or run.result_for(leaf.id) is not None:
                    continue
                view = self._test_tree.view_for_id(leaf.id)
                if view is None:
                    # View tree lags the Session. Skip.
                    continue
                run.enqueue(view)

        # Ask the analyzer to run the selected tests
        params = RunTestsParams({'runKind': run_kind.value})
        if include is not None:
            params['include'] = include
        if exclude is not None:
            params['exclude'] = exclude
        try:
            self._client.send_request(RUN_TESTS, params)
        except Exception as e:
            cli.print_error(f'Cannot run tests: {RUN_TESTS} request failed: {e}')
            self._end_run(run, crash_reason=e)
            return run

        return run

    def cancel(self, exact_ids: Sequence[NodeId]) -> None:
        """
        Asks the analyzer to stop running the specified tests.

        The run still ends only when the analyzer reports that it finished.
        If the request fails then a warning is printed and the run is left
        to finish on its own.
        """
        params = CancelTestsParams({'exact': list(exact_ids)})
        try:
            self._client.send_request(CANCEL_TESTS, params)
        except Exception as e:
            cli.print_warning(f'Cannot cancel tests: {CANCEL_TESTS} request failed: {e}')

    def handle_run_status(self, updates: Sequence[RunStatusUpdate]) -> None:
        """
        Applies a batch of status updates from the analyzer to the active run.

        Updates for tests whose views cannot be found are dropped.
        """
        for update in updates:
            run = self._active_run
            if run is None:
                self._update_was_dropped(update, 'no run is active')
                continue

            if update.kind == RunStatusKind.RawOutput:
                run.append_output(update.message or '')
                continue
            if update.kind == RunStatusKind.Finish:
                self._end_run(run)
                continue

            view = (
                self._test_tree.view_for_id(update.id)
                if update.id is not None
                else None
            )
            if view is None:
                self._update_was_dropped(update, 'no such test')
                continue

            if update.kind == RunStatusKind.Started:
                run.start(view)
            elif update.kind == RunStatusKind.Passed:
                run.pass_(view, update.duration)
            elif update.kind == RunStatusKind.Failed:
                run.fail(view, update.message, update.duration)
            elif update.kind == RunStatusKind.Errored:
                run.error(view, update.message, update.duration)
            elif update.kind == RunStatusKind.Skipped:
                run.skip(view)
            else:
                assert_never(update.kind)

    def _resolve(self, ids: Sequence[NodeId]) -> list[Session | Node]:
        """
        Raises:
        * SelectionResolutionFailure
        """
        nodes = [self._session.node_for_id(i) for i in ids]
        unresolved_ids = [i for (i, n) in zip(ids, nodes) if n is None]
        if len(unresolved_ids) > 0:
            raise SelectionResolutionFailure(unresolved_ids)
        return [n for n in nodes if n is not None]

    def _end_run(self, run: TestRun, *, crash_reason: CrashReason | None=None) -> None:
        if crash_reason is not None:
            run.crash_reason = crash_reason
        run.end()
        if self._active_run is run:
            self._active_run = None

    @staticmethod
    def _update_was_dropped(update: RunStatusUpdate, reason: str) -> None:
        if _VERBOSE_PATCHES:
            cli.print_info(f'Dropped {update.kind.value} status update for {update.id!r}: {reason}')


# ------------------------------------------------------------------------------
