"""Snapshot export and restore for the b4flite crew portal.

Exports every portal table into one versioned JSON envelope and restores such
an envelope into a possibly different store instance, reconciling entity
identities by natural key along the way.
"""

from flitevault.codec import SnapshotEnvelope, decode_snapshot, encode_snapshot
from flitevault.config import Settings
from flitevault.export import export_snapshot, export_to_file
from flitevault.relabel import relabel
from flitevault.restore import RestoreReport, restore_snapshot

__version__ = "0.1.0"
__all__ = [
    "RestoreReport",
    "Settings",
    "SnapshotEnvelope",
    "__version__",
    "decode_snapshot",
    "encode_snapshot",
    "export_snapshot",
    "export_to_file",
    "relabel",
    "restore_snapshot",
]
