class SchemaValidationError(Exception):
    """Raised when an event payload does not match its declared shape."""

    def __init__(self, event_name: str, field: str, message: str) -> None:
        self.event_name = event_name
        self.field = field
        self.message = message
        super().__init__(f"Invalid payload for '{event_name}' at '{field}': {message}")


class UnknownEventError(SchemaValidationError):
    """Raised when an event name is outside the registered set."""

    def __init__(self, event_name: str) -> None:
        super().__init__(event_name, "name", "unknown event name")
