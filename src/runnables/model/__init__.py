"""
In-memory test tree model.

The tree is Session -> Crate -> Module (nested) -> Function.
Only the SyncEngine may mutate the tree. Every other component reads it,
either by walking `children` or by looking up nodes by id.
"""

# ------------------------------------------------------------------------------
# Errors

from .errors import (
    ProtocolViolation,
    RunInProgressError,
    SelectionResolutionFailure,
    UnresolvedReference,
)  # reexport

# ------------------------------------------------------------------------------
# Nodes

from .nodes import (
    Crate,
    Function,
    iter_descendants,
    iter_leaves,
    iter_subtree,
    LEGAL_CHILD_KINDS,
    Module,
    Node,
    NodeKind,
    SourceRange,
    TestKind,
)  # reexport

# ------------------------------------------------------------------------------
# Session

from .session import (
    ROOT_ID,
    Session,
)  # reexport

# ------------------------------------------------------------------------------
