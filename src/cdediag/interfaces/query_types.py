"""Data types returned by query clients."""

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar, Union

from cdediag.core.exceptions import QueryError

T = TypeVar("T")


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful unit of work."""

    value: T

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    """Failed unit of work, carrying the structured query error."""

    error: QueryError

    @property
    def ok(self) -> bool:
        return False

    @property
    def message(self) -> str:
        """Human readable failure text including the failed operation."""
        if self.error.operation:
            return f"{self.error.operation}: {self.error}"
        return str(self.error)


Result = Union[Ok[T], Err]


@dataclass
class Listing:
    """Result of listing one resource kind in one scope.

    Items are plain dictionaries (API objects sanitized for serialization).
    An empty listing is a valid outcome, not a failure.
    """

    scope: str
    kind: str
    selector: str | None = None
    items: list[dict[str, Any]] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.items)


@dataclass(frozen=True)
class PodContainers:
    """Pod name with its init containers and main containers, in declaration order."""

    name: str
    init_containers: tuple[str, ...] = ()
    containers: tuple[str, ...] = ()

    @property
    def all_containers(self) -> tuple[str, ...]:
        """Init containers followed by main containers."""
        return self.init_containers + self.containers
