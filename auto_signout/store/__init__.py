from auto_signout.store.base import (
    BatchCapacityError,
    CommitResult,
    DocumentSnapshot,
    DocumentStore,
    Precondition,
    StagedWrite,
    StoreCommitError,
    StoreError,
    WriteBatch,
)

__all__ = [
    'BatchCapacityError',
    'CommitResult',
    'DocumentSnapshot',
    'DocumentStore',
    'Precondition',
    'StagedWrite',
    'StoreCommitError',
    'StoreError',
    'WriteBatch',
]
