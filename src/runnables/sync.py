"""
Applies DeltaUpdates to a tree.

The same breadth-first patch walk drives both the SyncEngine (which mutates
the Session) and the TestTree (which mirrors the Session onto a host-owned
tree view), so that both trees converge to the same shape even when a
DeltaUpdate is aborted partway by a ProtocolViolation.
"""

from collections import deque
from collections.abc import Callable, Sequence
from runnables.model import (
    iter_subtree, LEGAL_CHILD_KINDS, Node, NodeKind, ProtocolViolation, Session,
    UnresolvedReference,
)
from runnables.protocol.delta import Append, Delete, DeltaUpdate, Patch, Update, UpdatePayload
from runnables.util import cli
from runnables.util.test_mode import tests_are_running
from runnables.util.xtyping import NodeId
import os
from typing import Deque, Dict, List, Protocol, Set, TypeVar
from typing_extensions import override

_N = TypeVar('_N')

# If True, reports every patch that is dropped because its target is gone
_VERBOSE_PATCHES = os.environ.get('RUNNABLES_VERBOSE_PATCHES', 'False') == 'True'


# ------------------------------------------------------------------------------
# Patch Walk

class PatchTarget(Protocol[_N]):
    """
    A tree that patches can be applied to, with nodes of type _N.
    """
    @property
    def root(self) -> _N: ...
    def id_of(self, node: _N) -> NodeId: ...
    def kind_of(self, node: _N) -> NodeKind: ...
    def children_of(self, node: _N) -> Sequence[_N]: ...
    def lookup(self, node_id: NodeId) -> _N | None: ...
    def is_retired(self, node_id: NodeId) -> bool: ...

    def update(self, node: _N, payload: UpdatePayload) -> None: ...
    def remove(self, node: _N, parent: _N) -> None:
        """Removes `node` from `parent`, retiring the ids of its whole subtree."""
    def create(self, parent: _N, item: Node) -> _N:
        """Creates `item` (and its whole subtree) under `parent`, returning the new node."""


def apply_patches(
        target: PatchTarget[_N],
        delta: DeltaUpdate,
        *, patch_was_stale: Callable[[Patch], None] | None=None,
        ) -> None:
    """
    Applies the patches of a DeltaUpdate to a tree, with a single breadth-first
    walk that visits every live node exactly once, starting with the root.

    At each visited node:
    1. At most one Update targeting the node is applied.
    2. At most one Delete targeting the node is applied. A deleted node's
       subtree is not visited.
    3. Otherwise, while the head of the remaining Appends targets the node,
       that Append is applied.
    4. The node's current children (including any just appended) are queued.

    Appends that were still waiting for an earlier Append to be applied when
    their target was visited are applied after the walk, in list order.
    The nodes they create are then visited in the same way (minus step 3),
    so that Updates and Deletes reach every node that is live at the end of
    the DeltaUpdate. Patches whose target is not live are stale and are dropped.

    Raises:
    * ProtocolViolation -- if an Append targets a node that never existed,
      appends a kind of node that is illegal under its target, or
      reuses an id. Patches applied before the violation are not rolled back.
    """
    update_for_id = _group_by_target_id(delta.update)
    delete_for_id = _group_by_target_id(delta.delete)
    appends = delta.append
    next_append_index = 0

    pending = deque([(None, target.root)])  # type: Deque[tuple[_N | None, _N]]
    while len(pending) > 0:
        (parent, node) = pending.popleft()
        if not _visit(target, parent, node, update_for_id, delete_for_id):
            continue

        while (next_append_index < len(appends) and
                appends[next_append_index].target_id == target.id_of(node)):
            _apply_append(target, node, appends[next_append_index])
            next_append_index += 1

        for child in target.children_of(node):
            pending.append((node, child))

    # Apply appends whose target was visited before they reached the head
    late_pending = deque()  # type: Deque[tuple[_N | None, _N]]
    for append in appends[next_append_index:]:
        parent = target.lookup(append.target_id)
        if parent is None:
            if target.is_retired(append.target_id):
                if patch_was_stale is not None:
                    patch_was_stale(append)
                continue
            raise ProtocolViolation(
                'Append targets a node that does not exist',
                target_id=append.target_id, patch_kind=append.patch_kind)
        late_pending.append((parent, _apply_append(target, parent, append)))

    # Visit the nodes created by those appends
    visited_ids = set()  # type: Set[NodeId]
    while len(late_pending) > 0:
        (parent, node) = late_pending.popleft()
        node_id = target.id_of(node)
        if node_id in visited_ids:
            continue
        visited_ids.add(node_id)
        if target.lookup(node_id) is not node:
            # Removed along with an ancestor
            continue
        if not _visit(target, parent, node, update_for_id, delete_for_id):
            continue
        for child in target.children_of(node):
            late_pending.append((node, child))

    if patch_was_stale is not None:
        for stale_patches in [*update_for_id.values(), *delete_for_id.values()]:
            for patch in stale_patches:
                patch_was_stale(patch)


def _visit(
        target: PatchTarget[_N],
        parent: _N | None,
        node: _N,
        update_for_id: Dict[NodeId, List[Update]],
        delete_for_id: Dict[NodeId, List[Delete]],
        ) -> bool:
    """
    Applies the first Update and then the first Delete targeting a node.

    Returns whether the node is still in the tree.
    """
    node_id = target.id_of(node)

    update = _pop_first(update_for_id, node_id)
    if update is not None:
        target.update(node, update.payload)

    delete = _pop_first(delete_for_id, node_id)
    if delete is not None:
        if parent is None:
            raise ProtocolViolation(
                'Cannot delete the session root',
                target_id=node_id, patch_kind=delete.patch_kind)
        target.remove(node, parent)
        return False
    return True


def _apply_append(target: PatchTarget[_N], parent: _N, append: Append) -> _N:
    parent_kind = target.kind_of(parent)
    if append.item.kind not in LEGAL_CHILD_KINDS[parent_kind]:
        raise ProtocolViolation(
            f'Cannot append a {append.item.kind.value} under a {parent_kind.value}',
            target_id=append.target_id, patch_kind=append.patch_kind)

    new_ids = [n.id for n in iter_subtree(append.item)]
    if len(new_ids) != len(set(new_ids)):
        raise ProtocolViolation(
            f'Appended {append.item!r} contains duplicate ids',
            target_id=append.target_id, patch_kind=append.patch_kind)
    for new_id in new_ids:
        if target.lookup(new_id) is not None or target.is_retired(new_id):
            raise ProtocolViolation(
                f'Appended {append.item!r} reuses id {new_id!r}',
                target_id=append.target_id, patch_kind=append.patch_kind)

    return target.create(parent, append.item)


_P = TypeVar('_P', Delete, Update)

def _group_by_target_id(patches: Sequence[_P]) -> Dict[NodeId, List[_P]]:
    patches_for_id = {}  # type: Dict[NodeId, List[_P]]
    for patch in patches:
        patches_for_id.setdefault(patch.target_id, []).append(patch)
    return patches_for_id


def _pop_first(patches_for_id: Dict[NodeId, List[_P]], node_id: NodeId) -> _P | None:
    patches = patches_for_id.get(node_id)
    if not patches:
        return None
    patch = patches.pop(0)
    if len(patches) == 0:
        del patches_for_id[node_id]
    return patch


# ------------------------------------------------------------------------------
# SyncEngine

class SyncEngine:
    """
    Applies DeltaUpdates to a Session. The only owner allowed to mutate it.

    Listeners of the Session are notified of each node that is appended,
    changed, or removed, as the DeltaUpdate is applied.
    """

    def __init__(self,
            session: Session,
            *, check_invariants: bool | None=None,
            ) -> None:
        """
        Arguments:
        * session -- the tree to keep synchronized.
        * check_invariants -- whether to check the Session's invariants after
          every DeltaUpdate. Defaults to the RUNNABLES_CHECK_INVARIANTS
          environment variable, or True while tests are running.
        """
        self.session = session
        self._check_invariants = (
            check_invariants
            if check_invariants is not None
            else _default_check_invariants()
        )
        self._last_delta_id = None  # type: int | None

    # === Properties ===

    @property
    def last_delta_id(self) -> int | None:
        """The id of the last DeltaUpdate applied, or None if none was applied."""
        return self._last_delta_id

    # === Operations ===

    def apply(self, delta: DeltaUpdate) -> None:
        """
        Applies a DeltaUpdate to the Session.

        Raises:
        * ProtocolViolation -- if the DeltaUpdate cannot be applied.
          Patches applied before the violation are not rolled back.
        """
        if self._last_delta_id is not None and delta.id != self._last_delta_id + 1:
            cli.print_warning(
                f'DeltaUpdate {delta.id} does not follow DeltaUpdate {self._last_delta_id}. '
                f'Some DeltaUpdates may have been missed or replayed.')
        self._last_delta_id = delta.id

        try:
            apply_patches(
                _SessionPatchTarget(self.session),
                delta,
                patch_was_stale=self._patch_was_stale)
        finally:
            if self._check_invariants:
                self.session.check_invariants()

        self.session._notify_listeners('delta_did_apply', delta)

    @staticmethod
    def _patch_was_stale(patch: Patch) -> None:
        if _VERBOSE_PATCHES:
            cli.print_info(
                f'Dropped stale {patch.patch_kind} patch: {UnresolvedReference(patch.target_id)}')


def _default_check_invariants() -> bool:
    value = os.environ.get('RUNNABLES_CHECK_INVARIANTS')
    if value is None:
        return tests_are_running()
    return value == 'True'


class _SessionPatchTarget(PatchTarget['Session | Node']):
    def __init__(self, session: Session) -> None:
        self._session = session

    @override
    @property
    def root(self) -> 'Session | Node':
        return self._session

    @override
    def id_of(self, node: 'Session | Node') -> NodeId:
        return node.id

    @override
    def kind_of(self, node: 'Session | Node') -> NodeKind:
        return node.kind

    @override
    def children_of(self, node: 'Session | Node') -> Sequence['Session | Node']:
        return node.children

    @override
    def lookup(self, node_id: NodeId) -> 'Session | Node | None':
        return self._session.node_for_id(node_id)

    @override
    def is_retired(self, node_id: NodeId) -> bool:
        return self._session.is_retired(node_id)

    @override
    def update(self, node: 'Session | Node', payload: UpdatePayload) -> None:
        self._session._update_node(
            node,
            name=payload.name,
            location=payload.location,
            test_kind=payload.test_kind)

    @override
    def remove(self, node: 'Session | Node', parent: 'Session | Node') -> None:
        assert not isinstance(node, Session)
        self._session._remove_child(parent, node)

    @override
    def create(self, parent: 'Session | Node', item: Node) -> 'Session | Node':
        return self._session._create_child(parent, item)


# ------------------------------------------------------------------------------
