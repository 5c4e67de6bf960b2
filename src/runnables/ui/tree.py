"""
Facade for working with a tree view owned by the host UI.

This abstraction provides:
* tree nodes that can be manipulated before being added to a tree
* forwarding of every change on an attached node to the host's "peer" tree,
  as create/remove/update operations addressed by node id
"""

from __future__ import annotations

from collections.abc import Iterator
from runnables.model import NodeKind
from runnables.util.xtyping import NodeId
from typing import List, Optional, Protocol


class TreePeer(Protocol):
    """
    The host's tree view. Nodes are addressed by the same ids as the test tree.

    The root of the tree is never displayed and is never created in the peer.
    Its direct children are created with the root's id as their parent id.
    """
    def create_node(self, parent_id: NodeId, id: NodeId, index: int, label: str, location: str | None) -> None:
        """Creates a node at position `index` among the children of the node `parent_id`."""

    def remove_node(self, id: NodeId) -> None:
        """Removes the node `id` and all of its descendants."""

    def update_node(self, id: NodeId, **fields: object) -> None:
        """
        Changes presentation fields of the node `id`.
        Fields include: label, location, subtitle.
        """


class TreeView:
    """
    Displays a tree of nodes.

    Acts as a facade for manipulating an underlying host tree view.
    The host tree view may be accessed through the `peer` attribute.
    If there is no peer then the tree is maintained without being displayed.

    Automatically creates a root NodeView (accessible via the `root` attribute),
    which will not be displayed.
    """

    def __init__(self, root_id: NodeId, peer: TreePeer | None=None) -> None:
        self.peer = peer
        self._root = NodeView(root_id, NodeKind.Session)
        self._root._attach(self)

    # === Properties ===

    def _get_root(self) -> NodeView:
        return self._root
    root = property(_get_root)

    # === Operations ===

    def dispose(self) -> None:
        self.root.dispose()
        self.peer = None


class NodeView:
    """
    Node that is (or will be) in a TreeView.

    Allows modifications even if the node has not yet been added to a tree.
    Once added, every modification is forwarded to the tree's peer.
    """

    # Optimize per-instance memory use, since there may be very many NodeView objects
    __slots__ = (
        '_tree',
        '_id',
        '_kind',
        '_title',
        '_location',
        '_subtitle',
        '_children',
    )

    def __init__(self,
            id: NodeId,
            kind: NodeKind,
            title: str='',
            location: str | None=None,
            ) -> None:
        self._tree = None  # type: Optional[TreeView]
        self._id = id
        self._kind = kind
        self._title = title
        self._location = location
        self._subtitle = None  # type: Optional[str]
        self._children = []  # type: List[NodeView]

    # === Properties ===

    @property
    def id(self) -> NodeId:
        return self._id

    @property
    def kind(self) -> NodeKind:
        return self._kind

    def _get_title(self) -> str:
        return self._title
    def _set_title(self, value: str) -> None:
        if value == self._title:
            return
        self._title = value
        if self._peer is not None:
            self._peer.update_node(self._id, label=value)
    title = property(_get_title, _set_title)

    def _get_location(self) -> str | None:
        return self._location
    def _set_location(self, value: str | None) -> None:
        if value == self._location:
            return
        self._location = value
        if self._peer is not None:
            self._peer.update_node(self._id, location=value)
    location = property(_get_location, _set_location)

    def _get_subtitle(self) -> str | None:
        """Status text displayed beside the title, such as 'Passed'."""
        return self._subtitle
    def _set_subtitle(self, value: str | None) -> None:
        if value == self._subtitle:
            return
        self._subtitle = value
        if self._peer is not None:
            self._peer.update_node(self._id, subtitle=value)
    subtitle = property(_get_subtitle, _set_subtitle)

    @property
    def children(self) -> tuple[NodeView, ...]:
        return tuple(self._children)

    def set_children(self, new_children: list[NodeView]) -> None:
        """
        Replaces the children of this node,
        preserving old children that are also new children.

        Preserved children must keep their relative order.
        """
        old_children = self._children
        self._children = list(new_children)
        if self._tree is not None:
            new_children_set = set(new_children)
            for child in old_children:
                if child not in new_children_set:
                    child._delete_peer_and_descendants()
            old_children_set = set(old_children)
            for (index, child) in enumerate(new_children):
                if child not in old_children_set:
                    self._attach_child(child, index)

    def append_child(self, child: NodeView) -> None:
        # NOTE: The following is equivalent to:
        #           self.insert_child(len(self.children), child)
        self._children.append(child)
        if self._tree is not None:
            self._attach_child(child, len(self._children) - 1)

    def insert_child(self, index: int, child: NodeView) -> None:
        """Inserts `child` at position `index` among the children of this node."""
        self._children.insert(index, child)
        if self._tree is not None:
            self._attach_child(child, self._children.index(child))

    def remove_child(self, child: NodeView) -> None:
        """
        Raises:
        * ValueError -- if `child` is not a child of this node.
        """
        self._children.remove(child)
        child._delete_peer_and_descendants()

    @property
    def is_attached(self) -> bool:
        return self._tree is not None

    @property
    def _peer(self) -> TreePeer | None:
        return self._tree.peer if self._tree is not None else None

    # === Operations ===

    def _attach_child(self, child: NodeView, index: int) -> None:
        assert self._tree is not None
        peer = self._tree.peer
        if peer is not None:
            peer.create_node(self._id, child._id, index, child._title, child._location)
        child._attach(self._tree)

    def _attach(self, tree: TreeView) -> None:
        old_tree = self._tree  # capture
        if old_tree is not None:
            raise ValueError(
                f'Already attached to a different tree: '
                f'old_tree={old_tree!r}, new_tree={tree!r}')
        self._tree = tree

        # Trigger property logic to update peer
        if self._subtitle is not None and tree.peer is not None:
            tree.peer.update_node(self._id, subtitle=self._subtitle)
        for (index, child) in enumerate(self._children):
            self._attach_child(child, index)

    def _delete_peer_and_descendants(self) -> None:
        if self._tree is None:
            return
        peer = self._tree.peer
        self._detach()
        if peer is not None:
            # NOTE: The peer removes descendants along with their ancestor
            peer.remove_node(self._id)

    def _detach(self) -> None:
        self._tree = None
        for child in self._children:
            child._detach()

    def dispose(self) -> None:
        self._tree = None
        for c in self._children:
            c.dispose()
        self._children = []

    # === Utility ===

    def iter_subtree(self) -> Iterator[NodeView]:
        """Yields this node followed by all of its descendants, parents first."""
        yield self
        for child in self._children:
            yield from child.iter_subtree()

    def __repr__(self) -> str:
        return f'<NodeView {self._id!r} {self._title!r}>'
