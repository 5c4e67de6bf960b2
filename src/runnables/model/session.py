from collections.abc import Iterator
from runnables.model.errors import UnresolvedReference
from runnables.model.nodes import (
    Crate, Function, iter_descendants, iter_subtree, Module, Node, NodeKind, TestKind,
)
from runnables.util.listenable import ListenableMixin
from runnables.util.xtyping import NodeId
from typing import assert_never, Dict, List, Set


ROOT_ID = NodeId('0')
"""
The reserved id which addresses the Session in patches.
The Session never has an id of its own in the analyzer's id namespace.
"""


class Session(ListenableMixin):
    """
    Root of the test tree. Holds the crates of one analyzer session.

    The Session is created once at startup and is never deleted.
    It indexes every live node by id and remembers every id that was ever
    retired by a Delete, since ids are never reused within a session.

    The tree may only be mutated through the underscore-prefixed methods,
    which are called exclusively by the SyncEngine.

    Listeners may implement any of:
    * node_did_append(child: Node, parent: Session | Node)
    * node_did_change(node: Node)
    * node_did_remove(node: Node, parent: Session | Node)
    * delta_did_apply(delta: DeltaUpdate)
    """
    kind = NodeKind.Session
    id = ROOT_ID

    def __init__(self) -> None:
        super().__init__()
        self._crates = []  # type: List[Crate]
        self._node_for_id = {}  # type: Dict[NodeId, Node]
        self._retired_ids = set()  # type: Set[NodeId]

    # === Properties ===

    @property
    def crates(self) -> tuple[Crate, ...]:
        return tuple(self._crates)

    @property
    def children(self) -> tuple[Crate, ...]:
        return tuple(self._crates)

    # === Queries ===

    def node_for_id(self, node_id: NodeId) -> 'Session | Node | None':
        """
        Returns the live node with the specified id, or None if there is none.
        """
        if node_id == ROOT_ID:
            return self
        return self._node_for_id.get(node_id)

    def require_node(self, node_id: NodeId) -> 'Session | Node':
        """
        Returns the live node with the specified id.

        Raises:
        * UnresolvedReference -- if there is no live node with the specified id.
        """
        node = self.node_for_id(node_id)
        if node is None:
            raise UnresolvedReference(node_id)
        return node

    def is_retired(self, node_id: NodeId) -> bool:
        """
        Returns whether the specified id belonged to a node that was deleted.
        """
        return node_id in self._retired_ids

    @property
    def retired_ids(self) -> frozenset[NodeId]:
        """Ids of every node that was deleted. Such ids are never reused."""
        return frozenset(self._retired_ids)

    def iter_nodes(self) -> Iterator[Node]:
        """Yields every live node except the Session itself, parents before children."""
        return iter_descendants(self)

    def shape(self) -> set[tuple[NodeId, NodeId]]:
        """
        Returns the set of (id, parent_id) pairs of every live node
        except the Session itself.
        """
        return _shape_of(self)

    def check_invariants(self) -> None:
        """
        Checks that the id index agrees with the tree.

        Raises:
        * AssertionError -- if any invariant is violated.
        """
        reachable_ids = []
        for node in self.iter_nodes():
            reachable_ids.append(node.id)
            assert self._node_for_id.get(node.id) is node, \
                f'Node {node!r} is reachable but not indexed'
        assert len(reachable_ids) == len(set(reachable_ids)), \
            f'Some node is reachable by more than one path: {reachable_ids!r}'
        assert set(reachable_ids) == set(self._node_for_id), \
            f'Index has unreachable ids: {set(self._node_for_id) - set(reachable_ids)!r}'
        assert ROOT_ID not in self._node_for_id
        live_retired_ids = self._retired_ids & set(self._node_for_id)
        assert len(live_retired_ids) == 0, \
            f'Retired ids are live again: {live_retired_ids!r}'

    # === Mutations (SyncEngine only) ===

    def _create_child(self, parent: 'Session | Node', item: Node) -> Node:
        """
        Attaches a copy of `item` (including its whole subtree) as the last
        child of `parent` of its kind, indexing every new id.

        The caller is responsible for checking that the item's kind is legal
        under the parent and that none of its ids are live or retired.
        """
        child = item._copy()
        if isinstance(parent, Session):
            assert isinstance(child, Crate)
            parent._crates.append(child)
        elif isinstance(parent, Crate):
            assert isinstance(child, Module)
            parent._modules.append(child)
        elif isinstance(parent, Module):
            if isinstance(child, Module):
                if parent._modules is None:
                    parent._modules = []
                parent._modules.append(child)
            elif isinstance(child, Function):
                if parent._targets is None:
                    parent._targets = []
                parent._targets.append(child)
            else:
                raise AssertionError(f'Cannot place {child!r} under a Module')
        elif isinstance(parent, Function):
            raise AssertionError('A Function cannot have children')
        else:
            assert_never(parent)
        for node in iter_subtree(child):
            self._node_for_id[node.id] = node

        self._notify_listeners('node_did_append', child, parent)
        return child

    def _remove_child(self, parent: 'Session | Node', child: Node) -> None:
        """
        Detaches `child` from `parent`, retiring the ids of its whole subtree.
        """
        if isinstance(parent, Session):
            assert isinstance(child, Crate)
            parent._crates.remove(child)
        elif isinstance(parent, Crate):
            assert isinstance(child, Module)
            parent._modules.remove(child)
        elif isinstance(parent, Module):
            # NOTE: An emptied collection goes back to being unobserved,
            #       so that a present collection is never empty
            if isinstance(child, Module):
                assert parent._modules is not None
                parent._modules.remove(child)
                if len(parent._modules) == 0:
                    parent._modules = None
            elif isinstance(child, Function):
                assert parent._targets is not None
                parent._targets.remove(child)
                if len(parent._targets) == 0:
                    parent._targets = None
            else:
                raise AssertionError(f'Cannot remove {child!r} from a Module')
        elif isinstance(parent, Function):
            raise AssertionError('A Function has no children')
        else:
            assert_never(parent)
        for node in iter_subtree(child):
            del self._node_for_id[node.id]
            self._retired_ids.add(node.id)

        self._notify_listeners('node_did_remove', child, parent)

    def _update_node(self,
            node: 'Session | Node',
            *, name: str | None=None,
            location: str | None=None,
            test_kind: TestKind | None=None,
            ) -> bool:
        """
        Overwrites each present field that is meaningful for the node's kind.
        Fields that are not meaningful for the node's kind are ignored.

        Returns whether the node has any fields at all.
        """
        if isinstance(node, Session):
            # The Session has no fields
            return False
        if name is not None:
            node._name = name
        if location is not None:
            node._location = location
        if test_kind is not None and isinstance(node, Function):
            node._test_kind = test_kind
        self._notify_listeners('node_did_change', node)
        return True

    # === Utility ===

    def __repr__(self) -> str:
        return f'<Session with {len(self._node_for_id)} nodes>'


def _shape_of(root: Session) -> set[tuple[NodeId, NodeId]]:
    shape = set()
    pending = [root]  # type: List[Session | Node]
    while len(pending) > 0:
        parent = pending.pop()
        for child in parent.children:
            shape.add((child.id, parent.id))
            pending.append(child)
    return shape
