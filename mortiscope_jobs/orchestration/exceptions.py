from datetime import datetime


class OrchestrationError(Exception):
    """Base exception for run scheduling and step execution errors."""


class FunctionNotFoundError(OrchestrationError):
    """Raised when a run references a function that is not registered."""


class DuplicateFunctionError(OrchestrationError):
    """Raised when two functions are registered under the same id."""


class DuplicateStepError(OrchestrationError):
    """Raised when a function reuses a step name within one invocation."""


class RunSuspended(OrchestrationError):
    """Raised by a durable sleep to park the run until `resume_at`.

    Not a failure: the runner reschedules the run without consuming an attempt.
    """

    def __init__(self, step_name: str, resume_at: datetime) -> None:
        self.step_name = step_name
        self.resume_at = resume_at
        super().__init__(f"Run suspended at step '{step_name}' until {resume_at.isoformat()}")


class CompensationError(OrchestrationError):
    """Raised when a function's failure hook could not persist the failure state."""


class RecordedRunError(OrchestrationError):
    """Stands in for a failure recorded by an earlier attempt of the same run."""
