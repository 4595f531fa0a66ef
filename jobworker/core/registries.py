from typing import Any, Generic, Protocol, TypeVar

from jobworker.core.exceptions import ConfigurationError, UnknownJobTypeError
from jobworker.jobs.types import JobType

# Base registry implementation
K = TypeVar("K")
T = TypeVar("T")


class Registry(Generic[K, T]):
    """Generic registry for pluggable implementations."""

    def __init__(self, name: str):
        self.name = name
        self._implementations: dict[K, T] = {}
        self._frozen = False

    def register(self, name: K, implementation: T) -> None:
        """Register an implementation with a given name."""
        if self._frozen:
            raise RuntimeError(
                f"Cannot register '{name}' in {self.name.lower()} registry: "
                "registry is frozen"
            )
        self._implementations[name] = implementation

    def get(self, name: K) -> T:
        """Get an implementation by name."""
        if name not in self._implementations:
            raise KeyError(
                f"No {self.name.lower()} implementation registered with name: {name}"
            )
        return self._implementations[name]

    def list(self) -> list[K]:
        """List all registered implementation names."""
        return list(self._implementations.keys())

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if the registry is frozen."""
        return self._frozen


# Job Registry - work functions for background jobs
class JobHandler(Protocol):
    """Protocol for work functions that execute a job."""

    async def handle(self, payload: dict[str, Any]) -> Any:
        """
        Execute a job.

        Args:
            payload: Job-specific parameters, passed through unchanged

        Returns:
            JSON-serializable result stored with the completed job

        Raises:
            HandlerExecutionError: if the work failed and may be retried
        """
        ...


class JobRegistry(Registry[JobType, JobHandler]):
    """Registry binding every JobType to exactly one handler."""

    def __init__(self):
        super().__init__("Job")

    def register(self, name: JobType, implementation: JobHandler) -> None:
        if not isinstance(name, JobType):
            raise TypeError(f"Job handlers are keyed by JobType, got: {name!r}")
        super().register(name, implementation)

    def resolve(self, type_name: str) -> JobHandler:
        """Look up the handler for a stored job type string."""
        job_type = JobType.parse(type_name)
        if job_type is None or job_type not in self._implementations:
            raise UnknownJobTypeError(type_name)
        return self._implementations[job_type]

    def validate_complete(self) -> None:
        """Fail startup if any job type has no handler."""
        missing = [job_type.value for job_type in JobType if job_type not in self._implementations]
        if missing:
            raise ConfigurationError(
                "Job types without a registered handler",
                details={"missing": missing},
            )
