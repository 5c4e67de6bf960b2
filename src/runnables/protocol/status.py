"""
Decoded `runStatus` notifications.
"""

from dataclasses import dataclass
from enum import Enum
from runnables.model import ProtocolViolation
from runnables.protocol.api import RunStatusUpdateData
from runnables.util.xtyping import NodeId, nodeid_from
import trycast
from trycast import checkcast


class RunStatusKind(Enum):
    RawOutput = 'RawOutput'
    Started = 'Started'
    Passed = 'Passed'
    Failed = 'Failed'
    Errored = 'Errored'
    Skipped = 'Skipped'
    Finish = 'Finish'


@dataclass(frozen=True)
class RunStatusUpdate:
    kind: RunStatusKind
    id: NodeId | None = None
    message: str | None = None
    duration: float | None = None


def decode_run_status_updates(data: object) -> list[RunStatusUpdate]:
    """
    Decodes the params of a `runStatus` notification.

    Raises:
    * ProtocolViolation -- if the data is malformed.
    """
    try:
        updates_data = checkcast(list[RunStatusUpdateData], data)
    except trycast.ValidationError as e:
        raise ProtocolViolation(f'Malformed run status: {e}') from e
    try:
        return [_decode_run_status_update(u) for u in updates_data]
    except TypeError as e:
        raise ProtocolViolation(f'Malformed run status: {e}') from e


def _decode_run_status_update(data: RunStatusUpdateData) -> RunStatusUpdate:
    kind_name = data['kind']
    if kind_name == 'Skiped':
        kind_name = 'Skipped'
    return RunStatusUpdate(
        kind=RunStatusKind(kind_name),
        id=nodeid_from(data['id']) if 'id' in data else None,
        message=data.get('message'),
        duration=data.get('duration'),
    )
