# noke/storage/errors.py


class DocumentStoreError(Exception):
    """Base class for failures raised by document store implementations."""


class DocumentConflictError(DocumentStoreError):
    """A document with the same id already exists in the target partition."""

    def __init__(self, doc_id: str, partition_key: str):
        self.doc_id = doc_id
        self.partition_key = partition_key
        super().__init__(f"Document '{doc_id}' already exists in partition '{partition_key}'.")


class DocumentNotFoundError(DocumentStoreError):
    """The addressed document does not exist."""

    def __init__(self, doc_id: str, partition_key: str):
        self.doc_id = doc_id
        self.partition_key = partition_key
        super().__init__(f"Document '{doc_id}' not found in partition '{partition_key}'.")


class PreconditionFailedError(DocumentStoreError):
    """
    A conditional write lost: the stored etag no longer matches the one the
    caller read, or the document was removed in between.
    """

    def __init__(self, doc_id: str, partition_key: str):
        self.doc_id = doc_id
        self.partition_key = partition_key
        super().__init__(f"Document '{doc_id}' in partition '{partition_key}' changed since it was read.")
