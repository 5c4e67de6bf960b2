from runnables.model import Node, TestKind
from runnables.protocol.delta import Append, Delete, DeltaUpdate, Update, UpdatePayload
from runnables.util.xtyping import nodeid_from
from typing import List


class PatchRecorder:
    """
    Records changes to a test tree, as observed by the producer of the tree,
    into the next DeltaUpdate to send.

    Each DeltaUpdate that the consumer acknowledges advances the sequence id,
    so that consecutive DeltaUpdates carry consecutive ids.
    """

    def __init__(self, next_id: int=0) -> None:
        self._id = next_id
        self._delete = []  # type: List[Delete]
        self._update = []  # type: List[Update]
        self._append = []  # type: List[Append]

    # === Properties ===

    @property
    def id(self) -> int:
        """The id of the DeltaUpdate currently being recorded."""
        return self._id

    @property
    def is_empty(self) -> bool:
        return (
            len(self._delete) == 0 and
            len(self._update) == 0 and
            len(self._append) == 0
        )

    # === Operations ===

    def delete(self, target_id: int | str) -> None:
        """Records that the node `target_id`, with its subtree, was removed."""
        self._delete.append(Delete(nodeid_from(target_id)))

    def update(self,
            target_id: int | str,
            *, name: str | None=None,
            location: str | None=None,
            test_kind: TestKind | None=None,
            ) -> None:
        """Records that the node `target_id` has new values for some fields."""
        self._update.append(Update(
            nodeid_from(target_id),
            UpdatePayload(name=name, location=location, test_kind=test_kind)))

    def append(self, target_id: int | str, item: Node) -> None:
        """Records that `item` was added as the last child of the node `target_id`."""
        self._append.append(Append(nodeid_from(target_id), item._copy()))

    def build(self) -> DeltaUpdate:
        """Returns the DeltaUpdate recorded so far, without consuming it."""
        return DeltaUpdate(
            id=self._id,
            delete=tuple(self._delete),
            update=tuple(self._update),
            append=tuple(self._append),
        )

    def was_consumed(self) -> DeltaUpdate:
        """
        Marks the DeltaUpdate recorded so far as consumed by the client,
        returning it.

        Advances the sequence id and clears all recorded patches.
        """
        delta = self.build()
        self._id += 1
        self._delete.clear()
        self._update.clear()
        self._append.clear()
        return delta
