class JobFunctionError(Exception):
    """Base exception for failures raised inside a job function's own logic."""


class DeletionTokenError(JobFunctionError):
    """Raised when an account deletion token is missing or expired."""
