class WorkerError(Exception):
    """Base exception for compute worker calls."""


class ConfigurationError(WorkerError):
    """Raised when the compute worker URL or secret is not configured."""


class WorkerNetworkError(WorkerError):
    """Raised when the compute worker cannot be reached or times out."""


class WorkerResponseError(WorkerError):
    """Raised when the compute worker answers with a non-2xx status."""

    def __init__(self, message: str, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"{message}: {body}")

