"""
Nodes of the test tree: Crate, Module, and Function.

Nodes expose their identity and attributes read-only. The tree is only ever
mutated by the Session (on behalf of the SyncEngine), which reaches into the
underscore-prefixed storage of each node.
"""

from collections.abc import Iterator, Sequence
from dataclasses import dataclass
from enum import Enum
from runnables.util.xtyping import NodeId
from typing import List, Optional, Protocol, TypeAlias


class NodeKind(Enum):
    Session = 'Session'
    Crate = 'Crate'
    Module = 'Module'
    Function = 'Function'


class TestKind(Enum):
    # NOTE: Values are the integer encoding used on the wire
    Test = 0
    Bench = 1
    Bin = 2

    __test__ = False  # not a test class, despite its name


# Kinds of node which may be appended under a node of each kind
LEGAL_CHILD_KINDS = {
    NodeKind.Session: frozenset([NodeKind.Crate]),
    NodeKind.Crate: frozenset([NodeKind.Module]),
    NodeKind.Module: frozenset([NodeKind.Module, NodeKind.Function]),
    NodeKind.Function: frozenset(),
}


@dataclass(frozen=True)
class SourceRange:
    """
    A [start, end] range of (line, column) positions in a source file,
    used to navigate to a Function.
    """
    start: tuple[int, int]
    end: tuple[int, int]


# ------------------------------------------------------------------------------
# Crate

class Crate:
    """A package of modules. Always a direct child of the Session."""
    kind = NodeKind.Crate

    __slots__ = ('_id', '_name', '_location', '_modules')

    def __init__(self,
            id: NodeId,
            name: str,
            location: str,
            modules: 'Sequence[Module]'=(),
            ) -> None:
        self._id = id
        self._name = name
        self._location = location
        self._modules = list(modules)  # type: List[Module]

    # === Properties ===

    @property
    def id(self) -> NodeId:
        return self._id

    @property
    def name(self) -> str:
        return self._name

    @property
    def location(self) -> str:
        """Filesystem path of the crate, used to reveal it in an editor."""
        return self._location

    @property
    def modules(self) -> 'tuple[Module, ...]':
        return tuple(self._modules)

    @property
    def children(self) -> 'tuple[Module, ...]':
        return tuple(self._modules)

    # === Utility ===

    def _copy(self) -> 'Crate':
        return Crate(self._id, self._name, self._location, [m._copy() for m in self._modules])

    def __repr__(self) -> str:
        return f'Crate({self._id!r}, {self._name!r})'


# ------------------------------------------------------------------------------
# Module

class Module:
    """
    A module, which may hold submodules and test targets simultaneously.

    Both `modules` and `targets` are None until the analyzer has observed
    any children of that kind. Callers that only want to iterate should use
    `children`, which treats None and empty the same way.
    """
    kind = NodeKind.Module

    __slots__ = ('_id', '_name', '_location', '_modules', '_targets')

    def __init__(self,
            id: NodeId,
            name: str,
            location: str,
            modules: 'Sequence[Module] | None'=None,
            targets: 'Sequence[Function] | None'=None,
            ) -> None:
        self._id = id
        self._name = name
        self._location = location
        self._modules = list(modules) if modules else None  # type: Optional[List[Module]]
        self._targets = list(targets) if targets else None  # type: Optional[List[Function]]

    # === Properties ===

    @property
    def id(self) -> NodeId:
        return self._id

    @property
    def name(self) -> str:
        return self._name

    @property
    def location(self) -> str:
        return self._location

    @property
    def modules(self) -> 'tuple[Module, ...] | None':
        return tuple(self._modules) if self._modules is not None else None

    @property
    def targets(self) -> 'tuple[Function, ...] | None':
        return tuple(self._targets) if self._targets is not None else None

    @property
    def children(self) -> 'tuple[Module | Function, ...]':
        return tuple(self._modules or ()) + tuple(self._targets or ())

    # === Utility ===

    def _copy(self) -> 'Module':
        return Module(
            self._id, self._name, self._location,
            [m._copy() for m in self._modules] if self._modules is not None else None,
            [f._copy() for f in self._targets] if self._targets is not None else None,
        )

    def __repr__(self) -> str:
        return f'Module({self._id!r}, {self._name!r})'


# ------------------------------------------------------------------------------
# Function

class Function:
    """A test, benchmark, or binary target. Always a leaf."""
    kind = NodeKind.Function

    __slots__ = ('_id', '_name', '_location', '_range', '_test_kind')

    def __init__(self,
            id: NodeId,
            name: str,
            location: str,
            range: SourceRange,
            test_kind: TestKind=TestKind.Test,
            ) -> None:
        self._id = id
        self._name = name
        self._location = location
        self._range = range
        self._test_kind = test_kind

    # === Properties ===

    @property
    def id(self) -> NodeId:
        return self._id

    @property
    def name(self) -> str:
        return self._name

    @property
    def location(self) -> str:
        return self._location

    @property
    def range(self) -> SourceRange:
        return self._range

    @property
    def test_kind(self) -> TestKind:
        return self._test_kind

    @property
    def children(self) -> tuple[()]:
        return ()

    # === Utility ===

    def _copy(self) -> 'Function':
        return Function(self._id, self._name, self._location, self._range, self._test_kind)

    def __repr__(self) -> str:
        return f'Function({self._id!r}, {self._name!r}, {self._test_kind.name})'


# ------------------------------------------------------------------------------
# Traversal

Node: TypeAlias = Crate | Module | Function


class HasChildren(Protocol):
    @property
    def children(self) -> Sequence[Node]: ...


def iter_subtree(node: Node) -> Iterator[Node]:
    """
    Yields the specified node followed by all of its descendants,
    parents before children.
    """
    yield node
    yield from iter_descendants(node)


def iter_descendants(node: 'Node | HasChildren') -> Iterator[Node]:
    """
    Yields all descendants of the specified node (but not the node itself),
    parents before children.
    """
    for child in node.children:
        yield child
        yield from iter_descendants(child)


def iter_leaves(node: 'Node | HasChildren') -> Iterator[Function]:
    """
    Yields every Function in the subtree rooted at the specified node,
    including the node itself if it is a Function.
    """
    if isinstance(node, Function):
        yield node
        return
    for descendant in iter_descendants(node):
        if isinstance(descendant, Function):
            yield descendant


# ------------------------------------------------------------------------------
