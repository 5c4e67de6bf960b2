"""
The analyzer protocol: wire types, decoded values, and a patch recorder.
"""

# ------------------------------------------------------------------------------
# Client

from .client import (
    AnalyzerClient,
)  # reexport

# ------------------------------------------------------------------------------
# DeltaUpdate

from .delta import (
    Append,
    decode_delta_update,
    Delete,
    DeltaUpdate,
    encode_delta_update,
    Patch,
    Update,
    UpdatePayload,
)  # reexport

from .recorder import (
    PatchRecorder,
)  # reexport

# ------------------------------------------------------------------------------
# Run Status

from .status import (
    decode_run_status_updates,
    RunStatusKind,
    RunStatusUpdate,
)  # reexport

# ------------------------------------------------------------------------------
