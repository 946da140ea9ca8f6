from bioseq.events import ChangeEvent, EventKind
from bioseq.exceptions import (
    BioseqError,
    IncompatiblePlaneError,
    OperationCancelled,
    OperationFailed,
    SequenceRequiredError,
    TransactionError,
)
from bioseq.plane import Align, Plane, ResampleFilter
from bioseq.region import Region5D
from bioseq.sequence import ChannelInfo, Sequence, SequenceMetadata
from bioseq.types import DataType, Scaler

__version__ = "0.1.0"

__all__ = [
    "Align",
    "BioseqError",
    "ChangeEvent",
    "ChannelInfo",
    "DataType",
    "EventKind",
    "IncompatiblePlaneError",
    "OperationCancelled",
    "OperationFailed",
    "Plane",
    "Region5D",
    "ResampleFilter",
    "Scaler",
    "Sequence",
    "SequenceMetadata",
    "SequenceRequiredError",
    "TransactionError",
]
