from runnables.util.xtyping import NodeId


class ProtocolViolation(Exception):
    """
    A DeltaUpdate (or one of its patches) is structurally impossible to apply,
    such as an Append of a Function directly under a Crate.
    
    Fatal to the DeltaUpdate being applied. Patches already applied from the
    same DeltaUpdate are not rolled back.
    """
    def __init__(self,
            message: str,
            *, target_id: NodeId | None=None,
            patch_kind: str | None=None,
            ) -> None:
        super().__init__(message)
        self.target_id = target_id
        self.patch_kind = patch_kind
    
    def __str__(self) -> str:
        message = super().__str__()
        context = []
        if self.patch_kind is not None:
            context.append(f'patch_kind={self.patch_kind}')
        if self.target_id is not None:
            context.append(f'target_id={self.target_id!r}')
        if len(context) == 0:
            return message
        return f'{message} ({", ".join(context)})'


class UnresolvedReference(KeyError):
    """
    An id does not identify any live node.
    
    Non-fatal. Patches and status updates that target such an id are dropped.
    """
    def __init__(self, node_id: NodeId) -> None:
        super().__init__(node_id)
        self.node_id = node_id
    
    def __str__(self) -> str:
        return f'No live node with id {self.node_id!r}'


class SelectionResolutionFailure(Exception):
    """
    The include or exclude ids of a run request do not all identify live nodes.
    """
    def __init__(self, unresolved_ids: list[NodeId]) -> None:
        super().__init__(
            f'Cannot resolve selected ids: {", ".join(repr(i) for i in unresolved_ids)}')
        self.unresolved_ids = unresolved_ids


class RunInProgressError(Exception):
    """
    A run was requested while another run had not yet finished.
    """
