"""Error taxonomy for change orchestration."""

from __future__ import annotations


class ChangeforgeError(RuntimeError):
    """Base class for orchestration errors."""


class ConfigError(ChangeforgeError):
    """Raised when required configuration is missing or invalid."""


class ValidationError(ChangeforgeError):
    """Raised when a request is rejected before any external call is made."""


class DependencyCycleError(ValidationError):
    """Raised when the task graph cannot be ordered."""

    def __init__(self, task_ids: list[str]) -> None:
        self.task_ids = task_ids
        super().__init__(f"Task graph has a dependency cycle among: {', '.join(task_ids)}")


class HostingApiError(ChangeforgeError):
    """Raised when the Git hosting API returns a non-2xx response."""

    def __init__(self, method: str, endpoint: str, status_code: int, body: str) -> None:
        self.method = method
        self.endpoint = endpoint
        self.status_code = status_code
        self.body = body
        super().__init__(f"GitHub API {method} {endpoint} failed ({status_code}): {body}")

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

