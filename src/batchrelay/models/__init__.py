"""Domain entities.

Batch records live in the external record store; these models only describe
how a row is read, changed and written back.
"""

from batchrelay.models.batch import (
    Attachment,
    BatchRecord,
    BatchStatus,
    FailureLog,
    InvalidStateTransition,
    OrderedIdSet,
)

__all__ = [
    "Attachment",
    "BatchRecord",
    "BatchStatus",
    "FailureLog",
    "InvalidStateTransition",
    "OrderedIdSet",
]
