from typing import Any, Generic, Protocol, TypeVar

from verifyflow.v1.core.exceptions import HandlerAlreadyRegisteredError

# Base registry implementation
T = TypeVar("T")


class Registry(Generic[T]):
    """Generic registry for pluggable implementations."""

    def __init__(self, name: str):
        self.name = name
        self._implementations: dict[str, T] = {}
        self._frozen = False

    def register(self, name: str, implementation: T) -> None:
        """Register an implementation with a given name."""
        if self._frozen:
            raise RuntimeError(
                f"Cannot register '{name}' in {self.name.lower()} registry: "
                "registry is frozen"
            )
        self._implementations[name] = implementation

    def get(self, name: str) -> T:
        """Get an implementation by name."""
        if name not in self._implementations:
            raise KeyError(
                f"No {self.name.lower()} implementation registered with name: {name}"
            )
        return self._implementations[name]

    def contains(self, name: str) -> bool:
        return name in self._implementations

    def items(self) -> list[tuple[str, T]]:
        return list(self._implementations.items())

    def list(self) -> list[str]:
        """List all registered implementation names."""
        return list(self._implementations.keys())

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if the registry is frozen."""
        return self._frozen


# Job handler registry - one handler per (queue, job type)
class JobHandler(Protocol):
    """Protocol for handlers that execute one job type for one queue."""

    async def handle(self, job: Any) -> Any:
        """
        Execute a claimed job.

        Args:
            job: JobContext with the job id, queue, type, payload and attempt info

        Returns:
            A result dict, None, or a HandlerResult carrying follow-up submissions
        """
        ...


class HandlerRegistry(Registry[T]):
    """Registry for queue job handlers keyed by ``queue:job_type``."""

    def __init__(self):
        super().__init__("Handler")

    @staticmethod
    def key(queue_name: str, job_type: str) -> str:
        return f"{queue_name}:{job_type}"

    def register(self, name: str, implementation: T) -> None:
        if name in self._implementations:
            queue_name, _, job_type = name.partition(":")
            raise HandlerAlreadyRegisteredError(queue_name, job_type)
        super().register(name, implementation)
