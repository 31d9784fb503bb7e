"""Tagged results returned by every lending operation.

A call returns either ``Success`` carrying a typed payload, or ``Failure``
carrying one of the :class:`~lendingdesk.errors.ErrorKind` values and a
human-readable message.
"""

from dataclasses import dataclass
from typing import ClassVar, Generic, TypeVar, Union

from .errors import ErrorKind

T = TypeVar("T")


@dataclass(frozen=True)
class Success(Generic[T]):
    """Operation committed.

    ``audit_recorded`` is False when the mutation committed but its audit
    entry could not be written (degraded success).
    """

    value: T
    audit_recorded: bool = True

    ok: ClassVar[bool] = True


@dataclass(frozen=True)
class Failure:
    """Operation rejected; nothing was committed."""

    kind: ErrorKind
    message: str

    ok: ClassVar[bool] = False

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


Result = Union[Success[T], Failure]
