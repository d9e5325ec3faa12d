from typing import Optional


class BackendError(RuntimeError):
    """Raised when a call to a remote collaborator fails."""


class DocumentStoreError(BackendError):
    """Raised when a Firestore read, write or listener fails."""


class BlobStoreError(BackendError):
    """Raised when a Cloud Storage request fails."""


class IdentityProviderError(BackendError):
    """Raised when an Identity Toolkit request fails."""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


class FormValidationError(ValueError):
    """Raised before any remote call when user input is incomplete or malformed."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class WorkflowStepError(RuntimeError):
    """
    Raised when a create-then-attach workflow stops partway.

    record_id is set once the record was written, storage_path once the file
    was uploaded. Either may be left behind as an orphan.
    """

    def __init__(
        self,
        step: str,
        message: str,
        record_id: Optional[str] = None,
        storage_path: Optional[str] = None,
    ):
        super().__init__(message)
        self.step = step
        self.message = message
        self.record_id = record_id
        self.storage_path = storage_path
