"""
Decoded DeltaUpdate values, and conversion to and from their wire form.

A DeltaUpdate is three independent lists of patches:
* `delete` -- removes the node identified by `target_id`, with its subtree;
* `update` -- overwrites fields of the node identified by `target_id`;
* `append` -- inserts `item` as the last child of the node identified by
  `target_id`. Appends are applied strictly in list order, because a later
  append may target a node created by an earlier one.

Deletes and updates are mutually order-independent.
"""

from dataclasses import dataclass, field
from runnables.model import (
    Crate, Function, Module, Node, ProtocolViolation, SourceRange, TestKind,
)
from runnables.protocol.api import (
    AppendData, AppendItemData, CrateData, DeleteData, DeltaUpdateData,
    FunctionData, ModuleData, TestKindData, UpdateData, UpdatePayloadData,
)
from runnables.util.xtyping import NodeId, nodeid_from
import trycast
from trycast import checkcast
from typing import assert_never


# ------------------------------------------------------------------------------
# Values

@dataclass(frozen=True)
class UpdatePayload:
    """A partial record of node fields. Absent (None) fields are left unchanged."""
    name: str | None = None
    location: str | None = None
    test_kind: TestKind | None = None


@dataclass(frozen=True)
class Delete:
    target_id: NodeId

    patch_kind = 'delete'


@dataclass(frozen=True)
class Update:
    target_id: NodeId
    payload: UpdatePayload

    patch_kind = 'update'


@dataclass(frozen=True)
class Append:
    target_id: NodeId
    # NOTE: Never attached to a tree. Consumers copy it.
    item: Node

    patch_kind = 'append'


Patch = Delete | Update | Append


@dataclass(frozen=True)
class DeltaUpdate:
    id: int
    delete: tuple[Delete, ...] = field(default=())
    update: tuple[Update, ...] = field(default=())
    append: tuple[Append, ...] = field(default=())

    @property
    def is_empty(self) -> bool:
        return (
            len(self.delete) == 0 and
            len(self.update) == 0 and
            len(self.append) == 0
        )


# ------------------------------------------------------------------------------
# Decode

def decode_delta_update(data: object) -> DeltaUpdate:
    """
    Decodes the params of a `dataUpdate` notification.

    Raises:
    * ProtocolViolation -- if the data is malformed.
    """
    try:
        delta_data = checkcast(DeltaUpdateData, data)
    except trycast.ValidationError as e:
        raise ProtocolViolation(f'Malformed DeltaUpdate: {e}') from e
    try:
        return DeltaUpdate(
            id=_decode_delta_id(delta_data['id']),
            delete=tuple([_decode_delete(d) for d in delta_data['delete']]),
            update=tuple([_decode_update(u) for u in delta_data['update']]),
            append=tuple([_decode_append(a) for a in delta_data['append']]),
        )
    except (TypeError, ValueError) as e:
        raise ProtocolViolation(f'Malformed DeltaUpdate: {e}') from e


def _decode_delta_id(raw_id: int | str) -> int:
    if isinstance(raw_id, bool):
        raise TypeError(f'Expected DeltaUpdate id to be an integer but got: {raw_id!r}')
    return int(raw_id)


def _decode_delete(data: DeleteData) -> Delete:
    return Delete(nodeid_from(data['targetId']))


def _decode_update(data: UpdateData) -> Update:
    return Update(nodeid_from(data['targetId']), decode_update_payload(data['payload']))


def decode_update_payload(data: UpdatePayloadData) -> UpdatePayload:
    return UpdatePayload(
        name=data.get('name'),
        location=data.get('location'),
        test_kind=(
            decode_test_kind(data['testKind'])
            if 'testKind' in data
            else None
        ),
    )


def _decode_append(data: AppendData) -> Append:
    return Append(nodeid_from(data['targetId']), decode_item(data['item']))


def decode_item(data: AppendItemData) -> Node:
    """
    Decodes a node, including its whole subtree.

    Raises:
    * TypeError
    * ValueError
    """
    if data['kind'] == 'Crate':
        return _decode_crate(data)
    elif data['kind'] == 'Module':
        return _decode_module(data)
    elif data['kind'] == 'Function':
        return _decode_function(data)
    else:
        assert_never(data['kind'])


def _decode_crate(data: CrateData) -> Crate:
    return Crate(
        nodeid_from(data['id']),
        data['name'],
        data['location'],
        [_decode_module(m) for m in data.get('modules', [])],
    )


def _decode_module(data: ModuleData) -> Module:
    return Module(
        nodeid_from(data['id']),
        data['name'],
        data['location'],
        [_decode_module(m) for m in data['modules']] if 'modules' in data else None,
        [_decode_function(f) for f in data['targets']] if 'targets' in data else None,
    )


def _decode_function(data: FunctionData) -> Function:
    return Function(
        nodeid_from(data['id']),
        data['name'],
        data['location'],
        _decode_range(data['range']),
        decode_test_kind(data['testKind']),
    )


def _decode_range(data: list[list[int]]) -> SourceRange:
    if len(data) != 2 or any([len(position) != 2 for position in data]):
        raise ValueError(f'Expected range of form [[line, col], [line, col]] but got: {data!r}')
    ((start_line, start_col), (end_line, end_col)) = data
    return SourceRange((start_line, start_col), (end_line, end_col))


def decode_test_kind(data: TestKindData) -> TestKind:
    """
    Raises:
    * ValueError -- if `data` names no TestKind.
    """
    if isinstance(data, str):
        try:
            return TestKind[data]
        except KeyError:
            raise ValueError(f'Unknown test kind: {data!r}') from None
    return TestKind(data)


# ------------------------------------------------------------------------------
# Encode

def encode_delta_update(delta: DeltaUpdate) -> DeltaUpdateData:
    return DeltaUpdateData({
        'id': delta.id,
        'delete': [DeleteData({'targetId': d.target_id}) for d in delta.delete],
        'update': [
            UpdateData({
                'targetId': u.target_id,
                'payload': _encode_update_payload(u.payload),
            })
            for u in delta.update
        ],
        'append': [
            AppendData({'targetId': a.target_id, 'item': encode_item(a.item)})
            for a in delta.append
        ],
    })


def _encode_update_payload(payload: UpdatePayload) -> UpdatePayloadData:
    data = UpdatePayloadData({})
    if payload.name is not None:
        data['name'] = payload.name
    if payload.location is not None:
        data['location'] = payload.location
    if payload.test_kind is not None:
        data['testKind'] = payload.test_kind.value
    return data


def encode_item(item: Node) -> AppendItemData:
    if isinstance(item, Crate):
        crate_data = CrateData({
            'kind': 'Crate',
            'id': item.id,
            'name': item.name,
            'location': item.location,
        })
        if len(item.modules) > 0:
            crate_data['modules'] = [_encode_module(m) for m in item.modules]
        return crate_data
    elif isinstance(item, Module):
        return _encode_module(item)
    elif isinstance(item, Function):
        return _encode_function(item)
    else:
        assert_never(item)


def _encode_module(module: Module) -> ModuleData:
    module_data = ModuleData({
        'kind': 'Module',
        'id': module.id,
        'name': module.name,
        'location': module.location,
    })
    if module.modules is not None:
        module_data['modules'] = [_encode_module(m) for m in module.modules]
    if module.targets is not None:
        module_data['targets'] = [_encode_function(f) for f in module.targets]
    return module_data


def _encode_function(function: Function) -> FunctionData:
    return FunctionData({
        'kind': 'Function',
        'id': function.id,
        'name': function.name,
        'location': function.location,
        'range': [list(function.range.start), list(function.range.end)],
        'testKind': function.test_kind.value,
    })


# ------------------------------------------------------------------------------
