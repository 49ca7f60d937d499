"""Error taxonomy shared by the services and the HTTP layer.

Callers need to tell three situations apart: the request was invalid
(``ValidationError``), something should be retried (``TransientError``), or the
result is simply empty/partial, which is never an error.
"""

from typing import Any, Dict, List, Optional

from fastapi import status


class ExamBankError(Exception):
    """Base class; ``status_code`` is used when rendering over HTTP."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    retryable: bool = False

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": type(self).__name__, "detail": self.message, "retryable": self.retryable}
        body.update(self.context)
        return body


class ValidationError(ExamBankError):
    """Malformed or missing input; not retryable without changing the request."""

    status_code = status.HTTP_400_BAD_REQUEST


class ConfigurationError(ExamBankError):
    """No data store is configured for a canonical exam key."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class NotFoundError(ExamBankError):
    status_code = status.HTTP_404_NOT_FOUND


class DuplicateQuestionError(ExamBankError):
    """Bulk insert hit a duplicate key; the whole ingestion transaction was aborted."""

    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str, duplicate_indexes: Optional[List[int]] = None) -> None:
        self.duplicate_indexes = list(duplicate_indexes or [])
        super().__init__(message, duplicateIndexes=self.duplicate_indexes)


class TransientError(ExamBankError):
    """Connection or timeout failure; safe to retry with backoff."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    retryable = True
