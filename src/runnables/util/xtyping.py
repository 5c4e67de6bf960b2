NodeId = str
"""
The canonical identifier of a node in the test tree.

Some revisions of the analyzer protocol send ids as JSON numbers and others
as JSON strings. Ids are always normalized to strings at the protocol
boundary, so everything past the decoder only ever sees a NodeId.
"""


def nodeid_from(raw_id: int | str) -> NodeId:
    """
    Creates a NodeId from an id as it appeared on the wire.
    
    Raises:
    * TypeError -- if `raw_id` is neither an int nor a str.
    """
    # NOTE: bool is a subclass of int but is never a legal id
    if isinstance(raw_id, bool) or not isinstance(raw_id, (int, str)):
        raise TypeError(f'Expected id to be an int or str but got: {raw_id!r}')
    return NodeId(str(raw_id))
