"""
Wire types of the analyzer protocol, as JSON-compatible TypedDicts.

Inbound notifications are validated against these types with trycast
before they are decoded into the values in runnables.protocol.delta.
"""

from typing import Literal, NotRequired, TypeAlias, TypedDict


IdData: TypeAlias = int | str
"""An id as it appears on the wire. Normalized to a NodeId when decoded."""

TestKindData: TypeAlias = int | Literal['Test', 'Bench', 'Bin']


# ------------------------------------------------------------------------------
# Method Names

# Notifications (analyzer -> client)
DATA_UPDATE = 'dataUpdate'
RUN_STATUS = 'runStatus'

# Requests (client -> analyzer)
RUN_TESTS = 'runTests'
CANCEL_TESTS = 'cancelTests'


# ------------------------------------------------------------------------------
# Nodes

class FunctionData(TypedDict):
    kind: Literal['Function']
    id: IdData
    name: str
    location: str
    range: list[list[int]]  # [[start_line, start_col], [end_line, end_col]]
    testKind: TestKindData

class ModuleData(TypedDict):
    kind: Literal['Module']
    id: IdData
    name: str
    location: str
    modules: NotRequired['list[ModuleData]']
    targets: NotRequired['list[FunctionData]']

class CrateData(TypedDict):
    kind: Literal['Crate']
    id: IdData
    name: str
    location: str
    modules: NotRequired['list[ModuleData]']


AppendItemData: TypeAlias = CrateData | ModuleData | FunctionData


# ------------------------------------------------------------------------------
# dataUpdate

class DeleteData(TypedDict):
    targetId: IdData

class UpdatePayloadData(TypedDict):
    name: NotRequired[str]
    location: NotRequired[str]
    testKind: NotRequired[TestKindData]

class UpdateData(TypedDict):
    targetId: IdData
    payload: UpdatePayloadData

class AppendData(TypedDict):
    targetId: IdData
    item: AppendItemData

class DeltaUpdateData(TypedDict):
    id: IdData
    delete: list[DeleteData]
    update: list[UpdateData]
    append: list[AppendData]


# ------------------------------------------------------------------------------
# runStatus

RunStatusKindData: TypeAlias = Literal[
    'RawOutput', 'Started', 'Passed', 'Failed', 'Errored', 'Skipped', 'Finish',
    # Older analyzers misspell 'Skipped'
    'Skiped',
]

class RunStatusUpdateData(TypedDict):
    kind: RunStatusKindData
    id: NotRequired[IdData]
    message: NotRequired[str]
    duration: NotRequired[float]


# ------------------------------------------------------------------------------
# runTests / cancelTests

RunKindData: TypeAlias = Literal['Run', 'Debug']

class RunTestsParams(TypedDict):
    include: NotRequired[list[str]]
    exclude: NotRequired[list[str]]
    runKind: RunKindData

class CancelTestsParams(TypedDict):
    exact: list[str]


# ------------------------------------------------------------------------------
