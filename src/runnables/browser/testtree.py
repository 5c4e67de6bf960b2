from collections import deque
from collections.abc import Sequence
from runnables.model import Node, NodeKind, ROOT_ID, Session
from runnables.protocol.delta import DeltaUpdate, UpdatePayload
from runnables.sync import apply_patches, PatchTarget
from runnables.ui.tree import NodeView, TreePeer, TreeView
from runnables.util.xtyping import NodeId
from typing import Deque, Dict, Set
from typing_extensions import override


class TestTree:
    """
    Mirrors a Session onto a host-owned tree view.

    The view tree is built in full exactly once, from the Session as it is
    when the TestTree is created. After that, each DeltaUpdate is reconciled
    incrementally with the same patch walk that the SyncEngine uses,
    so that only the nodes that changed are created, removed, or updated
    in the host's tree.
    """
    __test__ = False  # not a test class, despite its name

    def __init__(self, session: Session, peer: TreePeer | None=None) -> None:
        self.view = TreeView(ROOT_ID, peer)
        self._view_for_id = {}  # type: Dict[NodeId, NodeView]
        self._retired_ids = set(session.retired_ids)  # type: Set[NodeId]

        # Seed the view tree from the whole Session
        self.view.root.set_children([
            self._create_view_for(crate) for crate in session.crates
        ])

    # === Properties ===

    @property
    def root(self) -> NodeView:
        return self.view.root

    # === Queries ===

    def view_for_id(self, node_id: NodeId) -> NodeView | None:
        """Returns the view of the live node with the specified id, if any."""
        if node_id == ROOT_ID:
            return self.view.root
        return self._view_for_id.get(node_id)

    def find_item(self, node_id: NodeId) -> tuple[NodeView, NodeView] | None:
        """
        Locates the view of the node with the specified id, with a
        breadth-first search from the root.

        Returns a (view, parent_view) pair, or None if there is no such node.
        """
        pending = deque([self.view.root])  # type: Deque[NodeView]
        while len(pending) > 0:
            parent = pending.popleft()
            for child in parent.children:
                if child.id == node_id:
                    return (child, parent)
                pending.append(child)
        return None

    def shape(self) -> set[tuple[NodeId, NodeId]]:
        """
        Returns the set of (id, parent_id) pairs of every view
        except the root.
        """
        shape = set()
        for view in self.view.root.iter_subtree():
            for child in view.children:
                shape.add((child.id, view.id))
        return shape

    # === Operations ===

    def apply(self, delta: DeltaUpdate) -> None:
        """
        Reconciles the view tree with a DeltaUpdate that was (or will be)
        applied to the Session.

        Raises:
        * ProtocolViolation -- at the same patch where the SyncEngine raises it.
        """
        apply_patches(_TestTreePatchTarget(self), delta)

    def dispose(self) -> None:
        self.view.dispose()
        self._view_for_id.clear()

    # === Utility ===

    def _create_view_for(self, node: Node) -> NodeView:
        view = NodeView(node.id, node.kind, node.name, node.location)
        self._view_for_id[node.id] = view
        view.set_children([self._create_view_for(child) for child in node.children])
        return view


class _TestTreePatchTarget(PatchTarget[NodeView]):
    def __init__(self, tree: TestTree) -> None:
        self._tree = tree

    @override
    @property
    def root(self) -> NodeView:
        return self._tree.view.root

    @override
    def id_of(self, node: NodeView) -> NodeId:
        return node.id

    @override
    def kind_of(self, node: NodeView) -> NodeKind:
        return node.kind

    @override
    def children_of(self, node: NodeView) -> Sequence[NodeView]:
        return node.children

    @override
    def lookup(self, node_id: NodeId) -> NodeView | None:
        return self._tree.view_for_id(node_id)

    @override
    def is_retired(self, node_id: NodeId) -> bool:
        return node_id in self._tree._retired_ids

    @override
    def update(self, node: NodeView, payload: UpdatePayload) -> None:
        if node.kind == NodeKind.Session:
            return
        if payload.name is not None:
            node.title = payload.name
        if payload.location is not None:
            node.location = payload.location

    @override
    def remove(self, node: NodeView, parent: NodeView) -> None:
        parent.remove_child(node)
        for view in node.iter_subtree():
            del self._tree._view_for_id[view.id]
            self._tree._retired_ids.add(view.id)

    @override
    def create(self, parent: NodeView, item: Node) -> NodeView:
        view = self._tree._create_view_for(item)
        if item.kind == NodeKind.Module:
            # A module's submodules precede its targets, as in the Session
            index = len([c for c in parent.children if c.kind != NodeKind.Function])
            parent.insert_child(index, view)
        else:
            parent.append_child(view)
        return view


# ------------------------------------------------------------------------------
