"""
Fakes and builders shared by the unit tests.
"""

from collections.abc import Callable, Sequence
from runnables.model import (
    Crate, Function, Module, Node, SourceRange, TestKind,
)
from runnables.protocol.delta import Append, Delete, DeltaUpdate, Update, UpdatePayload
from runnables.run import RunKind
from runnables.util.bulkheads import capture_crashes_to_stderr
from runnables.util.xtyping import NodeId
from typing import Dict, List, Optional


# ------------------------------------------------------------------------------
# Builders

def crate(id: str, *modules: Module, name: str | None=None) -> Crate:
    return Crate(id, name or id, f'/src/{id}', modules)


def module(id: str, *children: Module | Function, name: str | None=None) -> Module:
    return Module(
        id, name or id, f'/src/{id}.rs',
        [c for c in children if isinstance(c, Module)] or None,
        [c for c in children if isinstance(c, Function)] or None,
    )


def function(id: str, *, name: str | None=None, test_kind: TestKind=TestKind.Test) -> Function:
    return Function(id, name or id, f'/src/{id}.rs', SourceRange((1, 0), (3, 1)), test_kind)


def delta(
        id: int=1,
        *, delete: Sequence[str]=(),
        update: Sequence[tuple[str, UpdatePayload]]=(),
        append: Sequence[tuple[str, Node]]=(),
        ) -> DeltaUpdate:
    return DeltaUpdate(
        id=id,
        delete=tuple([Delete(t) for t in delete]),
        update=tuple([Update(t, p) for (t, p) in update]),
        append=tuple([Append(t, i) for (t, i) in append]),
    )


# ------------------------------------------------------------------------------
# FakeAnalyzerClient

class FakeAnalyzerClient:
    """
    An AnalyzerClient that records requests and lets a test deliver
    notifications by hand.
    """
    def __init__(self) -> None:
        self.requests = []  # type: List[tuple[str, object]]
        self.failing_methods = set()  # type: set[str]
        self._handler_for_method = {}  # type: Dict[str, Callable[[object], None]]

    def send_request(self, method: str, params: object) -> object:
        self.requests.append((method, params))
        if method in self.failing_methods:
            raise ConnectionError(f'Simulated failure of {method}')
        return None

    def on_notification(self, method: str, handler: Callable[[object], None]) -> None:
        self._handler_for_method[method] = handler

    def notify(self, method: str, params: object) -> None:
        self._handler_for_method[method](params)


# ------------------------------------------------------------------------------
# RecordingTreePeer

class RecordingTreePeer:
    """
    A TreePeer that keeps its own copy of the displayed tree
    and records every operation performed on it.
    """
    def __init__(self) -> None:
        self.operations = []  # type: List[tuple]
        self.parent_id_for_id = {}  # type: Dict[NodeId, NodeId]
        self.child_ids_for_id = {}  # type: Dict[NodeId, List[NodeId]]
        self.fields_for_id = {}  # type: Dict[NodeId, Dict[str, object]]

    def create_node(self, parent_id: NodeId, id: NodeId, index: int, label: str, location: str | None) -> None:
        self.operations.append(('create', parent_id, id))
        assert id not in self.parent_id_for_id, f'Node {id!r} already displayed'
        sibling_ids = self.child_ids_for_id.setdefault(parent_id, [])
        assert 0 <= index <= len(sibling_ids), f'Index {index} out of range for {parent_id!r}'
        sibling_ids.insert(index, id)
        self.parent_id_for_id[id] = parent_id
        self.fields_for_id[id] = {'label': label, 'location': location}

    def remove_node(self, id: NodeId) -> None:
        self.operations.append(('remove', id))
        assert id in self.parent_id_for_id, f'Node {id!r} not displayed'
        self.child_ids_for_id[self.parent_id_for_id[id]].remove(id)
        for removed_id in [id, *self._descendant_ids_of(id)]:
            del self.parent_id_for_id[removed_id]
            del self.fields_for_id[removed_id]
            self.child_ids_for_id.pop(removed_id, None)

    def update_node(self, id: NodeId, **fields: object) -> None:
        self.operations.append(('update', id, fields))
        assert id in self.fields_for_id, f'Node {id!r} not displayed'
        self.fields_for_id[id].update(fields)

    def shape(self) -> set[tuple[NodeId, NodeId]]:
        return set(self.parent_id_for_id.items())

    def children_ids_of(self, parent_id: NodeId) -> list[NodeId]:
        """Returns the ids of the displayed children of `parent_id`, in display order."""
        return list(self.child_ids_for_id.get(parent_id, []))

    def _descendant_ids_of(self, id: NodeId) -> list[NodeId]:
        child_ids = list(self.child_ids_for_id.get(id, []))
        descendant_ids = list(child_ids)
        for child_id in child_ids:
            descendant_ids.extend(self._descendant_ids_of(child_id))
        return descendant_ids


# ------------------------------------------------------------------------------
# RecordingRunPeer

class RecordingRunPeer:
    def __init__(self) -> None:
        self.events = []  # type: List[tuple]

    def enqueue(self, id: NodeId) -> None:
        self.events.append(('enqueue', id))

    def start(self, id: NodeId) -> None:
        self.events.append(('start', id))

    def pass_(self, id: NodeId, duration: float | None) -> None:
        self.events.append(('pass', id, duration))

    def fail(self, id: NodeId, message: str | None, duration: float | None) -> None:
        self.events.append(('fail', id, message, duration))

    def error(self, id: NodeId, message: str | None, duration: float | None) -> None:
        self.events.append(('error', id, message, duration))

    def skip(self, id: NodeId) -> None:
        self.events.append(('skip', id))

    def append_output(self, text: str) -> None:
        self.events.append(('output', text))

    def end(self) -> None:
        self.events.append(('end',))


class RecordingRunHost:
    def __init__(self) -> None:
        self.peers = []  # type: List[tuple[list[NodeId] | None, list[NodeId] | None, RunKind, RecordingRunPeer]]

    def begin_run(self,
            include: list[NodeId] | None,
            exclude: list[NodeId] | None,
            run_kind: RunKind,
            ) -> RecordingRunPeer:
        peer = RecordingRunPeer()
        self.peers.append((include, exclude, run_kind, peer))
        return peer

    @property
    def last_peer(self) -> Optional[RecordingRunPeer]:
        return self.peers[-1][3] if len(self.peers) > 0 else None


# ------------------------------------------------------------------------------
# RecordingSessionListener

class RecordingSessionListener:
    def __init__(self) -> None:
        self.events = []  # type: List[tuple]

    @capture_crashes_to_stderr
    def node_did_append(self, child: Node, parent: object) -> None:
        self.events.append(('append', child.id, getattr(parent, 'id')))

    @capture_crashes_to_stderr
    def node_did_change(self, node: Node) -> None:
        self.events.append(('change', node.id))

    @capture_crashes_to_stderr
    def node_did_remove(self, node: Node, parent: object) -> None:
        self.events.append(('remove', node.id, getattr(parent, 'id')))

    @capture_crashes_to_stderr
    def delta_did_apply(self, delta: DeltaUpdate) -> None:
        self.events.append(('applied', delta.id))


# ------------------------------------------------------------------------------
