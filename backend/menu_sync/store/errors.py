"""
Document store error taxonomy.

- TransientStoreError: network/timeout on read, write or subscription.
  Retried with backoff at the call site; change feeds resubscribe.
- DocumentNotFoundError: target document missing. Deletes treat it as
  success; an update inside a batch turns it into an AtomicBatchFailure.
- AtomicBatchFailure: the whole batch was rejected and nothing was applied.
"""


class StoreError(Exception):
    """Base class for document store failures."""


class TransientStoreError(StoreError):
    """Temporary failure; the same call may succeed if retried."""


class DocumentNotFoundError(StoreError):
    """The addressed document does not exist."""

    def __init__(self, collection: str, doc_id: str):
        self.collection = collection
        self.doc_id = doc_id
        super().__init__(f"{collection}/{doc_id} not found")


class AtomicBatchFailure(StoreError):
    """A batched write was rejected as a whole."""

    def __init__(self, message: str, operations: int = 0):
        self.operations = operations
        super().__init__(message)
