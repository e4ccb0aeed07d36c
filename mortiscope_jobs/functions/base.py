from abc import ABC, abstractmethod
from typing import Any, ClassVar

from pydantic import BaseModel

from mortiscope_jobs.events.registry import Event
from mortiscope_jobs.logging.logger import Log
from mortiscope_jobs.orchestration.step import StepContext


class JobFunction(ABC):
    """A durable, retryable handler bound to exactly one event name.

    Subclasses declare the trigger event and the payload model(s) it carries.
    `handle` is re-invoked from the top on every attempt, so all side effects
    must go through `step.run` / `step.send_event`. `on_failure` runs once,
    after the retry budget is exhausted, with the already type-checked event.
    """

    id: ClassVar[str]
    name: ClassVar[str]
    trigger: ClassVar[str]
    payload_types: ClassVar[tuple[type[BaseModel], ...]]
    retries: ClassVar[int | None] = None

    @abstractmethod
    def handle(self, event: Event, step: StepContext) -> Any:
        raise NotImplementedError

    def on_failure(self, event: Event, error: Exception) -> None:
        Log.error(f"Function '{self.id}' failed terminally: {error}", function=self.id)

    def accepts(self, event: Event) -> bool:
        """Type guard: True only for this function's event name and payload shape."""
        return event.name == self.trigger and isinstance(event.data, self.payload_types)
