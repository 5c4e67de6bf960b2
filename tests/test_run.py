"""
Unit tests for runnables.run module.
"""

from runnables.browser.testtree import TestTree
from runnables.model import (
    NodeKind, ROOT_ID, RunInProgressError, SelectionResolutionFailure, Session,
)
from runnables.protocol import RunStatusKind, RunStatusUpdate
from runnables.run import (
    DEBUG_PROFILE, LeafResult, LeafState, RUN_PROFILE, RunController, RunKind,
    run_kind_for_profile, RunState, TestRun,
)
from runnables.sync import SyncEngine
from runnables.ui.tree import NodeView
from runnables.util.bulkheads import capture_crashes_to_stderr
import pytest
from tests.util import (
    crate, delta, FakeAnalyzerClient, function, module, RecordingRunHost,
    RecordingTreePeer,
)
from typing import List


class _Fixture:
    """
    A RunController over the tree:
        c1
            m1
                f1
                f2
            m2
                f3
        c2
            m3
                f4
    """
    def __init__(self) -> None:
        self.session = Session()
        SyncEngine(self.session, check_invariants=True).apply(delta(0, append=[
            (ROOT_ID, crate('c1', module('m1', function('f1'), function('f2')), module('m2', function('f3')))),
            (ROOT_ID, crate('c2', module('m3', function('f4')))),
        ]))
        self.tree_peer = RecordingTreePeer()
        self.test_tree = TestTree(self.session, self.tree_peer)
        self.client = FakeAnalyzerClient()
        self.host = RecordingRunHost()
        self.controller = RunController(
            self.client, self.session, self.test_tree, host=self.host)

    def status(self, *updates: RunStatusUpdate) -> None:
        self.controller.handle_run_status(list(updates))


@pytest.fixture
def fx() -> _Fixture:
    return _Fixture()


class TestRunProfiles:
    def test_known_profiles_map_to_run_kinds(self) -> None:
        assert run_kind_for_profile(RUN_PROFILE) == RunKind.Run
        assert run_kind_for_profile(DEBUG_PROFILE) == RunKind.Debug

    def test_unknown_profile_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            run_kind_for_profile('Usually profile')


class TestSelection:
    """Tests for which tests RunController.execute() enqueues."""

    def test_no_include_selects_every_test(self, fx: _Fixture) -> None:
        run = fx.controller.execute(None, None, RunKind.Run)
        assert run.enqueued_ids == ['f1', 'f2', 'f3', 'f4']
        assert fx.client.requests == [('runTests', {'runKind': 'Run'})]

    def test_include_minus_exclude_selects_leaves(self, fx: _Fixture) -> None:
        run = fx.controller.execute(['c1'], ['m2'], RunKind.Debug)
        assert run.enqueued_ids == ['f1', 'f2']
        assert fx.client.requests == [
            ('runTests', {'runKind': 'Debug', 'include': ['c1'], 'exclude': ['m2']}),
        ]

    def test_overlapping_include_enqueues_each_test_once(self, fx: _Fixture) -> None:
        run = fx.controller.execute(['m1', 'f1', 'c1'], None, RunKind.Run)
        assert run.enqueued_ids == ['f1', 'f2', 'f3']

    def test_exclude_of_a_single_test(self, fx: _Fixture) -> None:
        run = fx.controller.execute(None, ['f3'], RunKind.Run)
        assert run.enqueued_ids == ['f1', 'f2', 'f4']

    def test_empty_include_selects_nothing(self, fx: _Fixture) -> None:
        run = fx.controller.execute([], None, RunKind.Run)
        assert run.enqueued_ids == []
        assert fx.client.requests == [('runTests', {'runKind': 'Run', 'include': []})]

    def test_enqueued_tests_are_shown_as_queued(self, fx: _Fixture) -> None:
        fx.controller.execute(['m2'], None, RunKind.Run)
        f3 = fx.test_tree.view_for_id('f3')
        assert f3 is not None
        assert f3.subtitle == 'Queued'
        assert fx.tree_peer.fields_for_id['f3']['subtitle'] == 'Queued'

    def test_host_is_told_about_run_and_its_tests(self, fx: _Fixture) -> None:
        fx.controller.execute(['m1'], None, RunKind.Run)
        (include, exclude, run_kind, peer) = fx.host.peers[0]
        assert include == ['m1']
        assert exclude is None
        assert run_kind == RunKind.Run
        assert peer.events == [('enqueue', 'f1'), ('enqueue', 'f2')]

    def test_unresolved_id_ends_run_without_contacting_analyzer(
            self,
            fx: _Fixture,
            capsys: pytest.CaptureFixture[str]) -> None:
        run = fx.controller.execute(['m1', 'gone'], ['also_gone'], RunKind.Run)

        assert run.state == RunState.Ended
        assert isinstance(run.crash_reason, SelectionResolutionFailure)
        assert run.crash_reason.unresolved_ids == ['gone']
        assert run.enqueued_ids == []
        assert fx.client.requests == []
        assert fx.controller.is_idle
        assert 'Cannot run tests' in capsys.readouterr().err

    def test_cancellation_while_enqueuing_ends_run(self, fx: _Fixture) -> None:
        checks = []  # type: List[int]
        def is_cancelled() -> bool:
            checks.append(1)
            return len(checks) > 2

        run = fx.controller.execute(None, None, RunKind.Run, is_cancelled=is_cancelled)
        assert run.state == RunState.Ended
        assert run.enqueued_ids == ['f1', 'f2']
        assert fx.client.requests == []
        assert fx.controller.is_idle


class TestExecute:
    """Tests for the lifecycle of runs started by RunController.execute()."""

    def test_second_run_while_first_is_active_is_rejected(self, fx: _Fixture) -> None:
        first = fx.controller.execute(None, None, RunKind.Run)
        with pytest.raises(RunInProgressError):
            fx.controller.execute(['f1'], None, RunKind.Run)
        assert fx.controller.active_run is first
        assert len(fx.client.requests) == 1

    def test_run_can_start_after_previous_run_finished(self, fx: _Fixture) -> None:
        fx.controller.execute(None, None, RunKind.Run)
        fx.status(RunStatusUpdate(RunStatusKind.Finish))
        second = fx.controller.execute(['f1'], None, RunKind.Run)
        assert fx.controller.active_run is second

    def test_failure_to_send_request_ends_run(
            self,
            fx: _Fixture,
            capsys: pytest.CaptureFixture[str]) -> None:
        fx.client.failing_methods.add('runTests')
        run = fx.controller.execute(None, None, RunKind.Run)

        assert run.state == RunState.Ended
        assert isinstance(run.crash_reason, ConnectionError)
        assert fx.controller.is_idle
        assert fx.host.last_peer is not None
        assert fx.host.last_peer.events[-1] == ('end',)
        assert 'runTests request failed' in capsys.readouterr().err

    def test_cancel_sends_exact_ids(self, fx: _Fixture) -> None:
        run = fx.controller.execute(None, None, RunKind.Run)
        fx.controller.cancel(['f1', 'f2'])

        assert fx.client.requests[-1] == ('cancelTests', {'exact': ['f1', 'f2']})
        # Run ends only when the analyzer says so
        assert run.state == RunState.Running

    def test_failure_to_cancel_is_only_a_warning(
            self,
            fx: _Fixture,
            capsys: pytest.CaptureFixture[str]) -> None:
        fx.client.failing_methods.add('cancelTests')
        run = fx.controller.execute(None, None, RunKind.Run)
        fx.controller.cancel(['f1'])

        assert run.state == RunState.Running
        assert 'Cannot cancel tests' in capsys.readouterr().err


class TestRunStatus:
    """Tests for RunController.handle_run_status()."""

    def test_status_updates_are_fanned_out_to_tests(self, fx: _Fixture) -> None:
        run = fx.controller.execute(['m1'], None, RunKind.Run)
        fx.status(
            RunStatusUpdate(RunStatusKind.Started, 'f1'),
            RunStatusUpdate(RunStatusKind.Passed, 'f1', duration=12.5),
            RunStatusUpdate(RunStatusKind.Started, 'f2'),
            RunStatusUpdate(RunStatusKind.Failed, 'f2', message='assertion failed', duration=3.0),
        )

        assert run.result_for('f1') == LeafResult(LeafState.Passed, None, 12.5)
        assert run.result_for('f2') == LeafResult(LeafState.Failed, 'assertion failed', 3.0)
        assert fx.tree_peer.fields_for_id['f1']['subtitle'] == 'Passed (12.5 ms)'
        assert fx.tree_peer.fields_for_id['f2']['subtitle'] == 'Failed (3 ms)'

        peer = fx.host.last_peer
        assert peer is not None
        assert peer.events[2:] == [
            ('start', 'f1'),
            ('pass', 'f1', 12.5),
            ('start', 'f2'),
            ('fail', 'f2', 'assertion failed', 3.0),
        ]

    def test_errored_and_skipped_tests(self, fx: _Fixture) -> None:
        run = fx.controller.execute(['m1'], None, RunKind.Run)
        fx.status(
            RunStatusUpdate(RunStatusKind.Errored, 'f1', message='panicked'),
            RunStatusUpdate(RunStatusKind.Skipped, 'f2'),
        )
        assert run.result_for('f1') == LeafResult(LeafState.Errored, 'panicked')
        assert run.result_for('f2') == LeafResult(LeafState.Skipped)
        f2 = fx.test_tree.view_for_id('f2')
        assert f2 is not None
        assert f2.subtitle == 'Skipped'

    def test_raw_output_is_appended_to_transcript(self, fx: _Fixture) -> None:
        run = fx.controller.execute(None, None, RunKind.Run)
        fx.status(
            RunStatusUpdate(RunStatusKind.RawOutput, message='running 4 tests\n'),
            RunStatusUpdate(RunStatusKind.RawOutput, message='test f1 ... ok\n'),
        )
        assert run.output == 'running 4 tests\ntest f1 ... ok\n'
        assert fx.host.last_peer is not None
        assert ('output', 'test f1 ... ok\n') in fx.host.last_peer.events

    def test_finish_ends_run_and_returns_to_idle(self, fx: _Fixture) -> None:
        run = fx.controller.execute(None, None, RunKind.Run)
        fx.status(RunStatusUpdate(RunStatusKind.Finish))

        assert run.state == RunState.Ended
        assert run.crash_reason is None
        assert fx.controller.is_idle
        assert fx.host.last_peer is not None
        assert fx.host.last_peer.events[-1] == ('end',)

    def test_updates_for_unknown_tests_are_dropped(self, fx: _Fixture) -> None:
        run = fx.controller.execute(['m1'], None, RunKind.Run)
        fx.status(
            RunStatusUpdate(RunStatusKind.Passed, 'ghost'),
            RunStatusUpdate(RunStatusKind.Started, None),
            RunStatusUpdate(RunStatusKind.Passed, 'f1'),
        )
        assert run.result_for('ghost') is None
        assert run.result_for('f1') == LeafResult(LeafState.Passed)

    def test_updates_for_tests_outside_the_selection_are_applied(self, fx: _Fixture) -> None:
        run = fx.controller.execute(['m1'], None, RunKind.Run)
        fx.status(RunStatusUpdate(RunStatusKind.Passed, 'f4'))
        assert run.result_for('f4') == LeafResult(LeafState.Passed)

    def test_updates_without_active_run_are_dropped(self, fx: _Fixture) -> None:
        fx.status(
            RunStatusUpdate(RunStatusKind.Started, 'f1'),
            RunStatusUpdate(RunStatusKind.Finish),
        )
        f1 = fx.test_tree.view_for_id('f1')
        assert f1 is not None
        assert f1.subtitle is None
        assert fx.controller.is_idle

    def test_updates_after_finish_in_same_batch_are_dropped(self, fx: _Fixture) -> None:
        run = fx.controller.execute(['m1'], None, RunKind.Run)
        fx.status(
            RunStatusUpdate(RunStatusKind.Finish),
            RunStatusUpdate(RunStatusKind.Passed, 'f1'),
        )
        assert run.result_for('f1') == LeafResult(LeafState.Enqueued)

    def test_dropped_updates_are_reported_only_when_verbose(
            self,
            fx: _Fixture,
            capsys: pytest.CaptureFixture[str],
            monkeypatch: pytest.MonkeyPatch) -> None:
        fx.controller.execute(None, None, RunKind.Run)
        fx.status(RunStatusUpdate(RunStatusKind.Passed, 'ghost'))
        assert 'Dropped' not in capsys.readouterr().err

        monkeypatch.setattr('runnables.run._VERBOSE_PATCHES', True)
        fx.status(RunStatusUpdate(RunStatusKind.Passed, 'ghost'))
        assert "Dropped Passed status update for 'ghost': no such test" in capsys.readouterr().err


class TestTestRun:
    """Tests for TestRun."""

    def test_end_is_idempotent_and_notifies_once(self) -> None:
        class Listener:
            def __init__(self) -> None:
                self.ended = []  # type: List[TestRun]

            @capture_crashes_to_stderr
            def test_run_did_end(self, run: TestRun) -> None:
                self.ended.append(run)

        run = TestRun(RunKind.Run)
        listener = Listener()
        run.listeners.append(listener)
        run.end()
        run.end()
        assert listener.ended == [run]

    def test_ended_run_rejects_further_transitions(self) -> None:
        run = TestRun(RunKind.Run)
        view = NodeView('f1', NodeKind.Function)
        run.enqueue(view)
        run.end()
        with pytest.raises(ValueError):
            run.start(view)
        with pytest.raises(ValueError):
            run.append_output('late output')

    def test_latest_transition_wins(self) -> None:
        run = TestRun(RunKind.Debug)
        view = NodeView('f1', NodeKind.Function)
        run.enqueue(view)
        run.start(view)
        run.pass_(view, 0.25)
        assert run.results == {'f1': LeafResult(LeafState.Passed, None, 0.25)}
        assert view.subtitle == 'Passed (0.25 ms)'
