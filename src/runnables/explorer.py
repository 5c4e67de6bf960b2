"""
The test explorer: connects an analyzer to the host's tree view and run surface.

Inbound notifications:
* `dataUpdate` -- a DeltaUpdate, applied to the Session and the view tree.
* `runStatus` -- a batch of status updates, applied to the active run.

Outbound requests:
* `runTests` -- sent when the host requests a run.
* `cancelTests` -- sent when the host cancels a run.
"""

from collections.abc import Callable, Sequence
from runnables.browser.testtree import TestTree
from runnables.model import ProtocolViolation, Session
from runnables.protocol.api import DATA_UPDATE, RUN_STATUS
from runnables.protocol.client import AnalyzerClient
from runnables.protocol.delta import decode_delta_update, DeltaUpdate
from runnables.protocol.status import decode_run_status_updates
from runnables.run import RunController, RunHost, run_kind_for_profile, TestRun
from runnables.sync import SyncEngine
from runnables.ui.tree import TreePeer
from runnables.util import cli
from runnables.util.bulkheads import capture_crashes_to_stderr
from runnables.util.xtyping import NodeId


class TestExplorer:
    """
    Owns the Session of one analyzer connection, along with the SyncEngine,
    TestTree, and RunController that operate on it.
    """
    __test__ = False  # not a test class, despite its name

    def __init__(self,
            client: AnalyzerClient,
            peer: TreePeer | None=None,
            run_host: RunHost | None=None,
            *, check_invariants: bool | None=None,
            ) -> None:
        self.session = Session()
        self.engine = SyncEngine(self.session, check_invariants=check_invariants)
        self.test_tree = TestTree(self.session, peer)
        self.run_controller = RunController(
            client, self.session, self.test_tree, host=run_host)
        self._disposed = False

        client.on_notification(DATA_UPDATE, self._data_update_did_arrive)
        client.on_notification(RUN_STATUS, self._run_status_did_arrive)

    # === Operations ===

    def apply_delta(self, delta: DeltaUpdate) -> None:
        """
        Applies a DeltaUpdate to the Session and then reconciles the view tree.

        Raises:
        * ProtocolViolation -- if the DeltaUpdate cannot be applied.
          Both trees are left in the same partial state.
        """
        try:
            self.engine.apply(delta)
        except ProtocolViolation:
            # Stop the view tree at the same patch
            try:
                self.test_tree.apply(delta)
            except ProtocolViolation:
                pass
            else:
                raise AssertionError(
                    f'View tree accepted DeltaUpdate {delta.id} that the Session rejected')
            raise
        else:
            self.test_tree.apply(delta)

    def handle_run_request(self,
            include: Sequence[NodeId] | None,
            exclude: Sequence[NodeId] | None,
            profile: str,
            is_cancelled: Callable[[], bool] | None=None,
            ) -> TestRun:
        """
        Runs the tests selected by the host in the specified run profile.

        Raises:
        * ValueError -- if `profile` is not a known run profile.
        * RunInProgressError -- if another run has not yet finished.
        """
        run_kind = run_kind_for_profile(profile)
        return self.run_controller.execute(
            include, exclude, run_kind, is_cancelled=is_cancelled)

    def cancel_run(self, exact_ids: Sequence[NodeId]) -> None:
        self.run_controller.cancel(exact_ids)

    def dispose(self) -> None:
        """
        Stops handling notifications and releases the view tree.
        """
        self._disposed = True
        self.test_tree.dispose()

    # === Notifications ===

    @capture_crashes_to_stderr
    def _data_update_did_arrive(self, params: object) -> None:
        if self._disposed:
            return
        try:
            delta = decode_delta_update(params)
        except ProtocolViolation as e:
            cli.print_error(f'Rejected {DATA_UPDATE} notification: {e}')
            return
        try:
            self.apply_delta(delta)
        except ProtocolViolation as e:
            cli.print_error(f'Rejected DeltaUpdate {delta.id}: {e}')

    @capture_crashes_to_stderr
    def _run_status_did_arrive(self, params: object) -> None:
        if self._disposed:
            return
        try:
            updates = decode_run_status_updates(params)
        except ProtocolViolation as e:
            cli.print_error(f'Rejected {RUN_STATUS} notification: {e}')
            return
        self.run_controller.handle_run_status(updates)
