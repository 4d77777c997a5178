"""Tagged result type returned by remote-call wrappers.

Ingestion and retrieval never let provider exceptions cross component
boundaries.  Each wrapper returns either :class:`Ok` carrying a value or
:class:`Err` carrying an :class:`ErrorKind` tag plus a user-facing message,
and callers branch on the tag::

    result = await batcher.embed_all(texts, cancellation)
    if isinstance(result, Err):
        if result.kind is ErrorKind.CANCELLED:
            ...
    vectors = result.value

The tag set is the ingestion error taxonomy.  ``CANCELLED`` is a member so
it can travel through the same channel, but the job controller reports it
as its own terminal status rather than as a failure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Generic, TypeVar, Union

_T = TypeVar("_T")


class ErrorKind(str, Enum):  # noqa: UP042
    """Failure tags for ingestion and retrieval."""

    COLLECTION_NOT_FOUND = "collection_not_found"
    UNSUPPORTED_FILE_TYPE = "unsupported_file_type"
    NO_TEXT_CONTENT = "no_text_content"
    EMBEDDING_SERVICE_FAILURE = "embedding_service_failure"
    EMBEDDING_COUNT_MISMATCH = "embedding_count_mismatch"
    STORE_WRITE_FAILURE = "store_write_failure"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Ok(Generic[_T]):
    """Successful outcome wrapping ``value``."""

    value: _T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    """Failed outcome.

    Attributes
    ----------
    kind:
        The taxonomy tag.
    message:
        Human-readable text suitable for a terminal progress event.
    detail:
        Extra structured context (e.g. ``records_written`` after a partial
        store failure, or the embedding failure ``reason``).
    """

    kind: ErrorKind
    message: str
    detail: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return False

    @property
    def is_cancelled(self) -> bool:
        return self.kind is ErrorKind.CANCELLED


Result = Union[Ok[_T], Err]


def cancelled(message: str = "Upload cancelled", **detail: Any) -> Err:
    """Shorthand for an ``Err`` tagged :attr:`ErrorKind.CANCELLED`."""
    return Err(kind=ErrorKind.CANCELLED, message=message, detail=dict(detail))
