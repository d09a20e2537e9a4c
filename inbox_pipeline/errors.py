"""Pipeline error types."""


class PipelineHTTPError(Exception):
    """Error surfaced to an HTTP caller as ``{"ok": false, "error": ...}``."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class WorkerAuthError(PipelineHTTPError):
    """Missing or invalid worker credential."""

    def __init__(self, message: str = "Unauthorized worker token"):
        super().__init__(401, message)


class InvalidTransitionError(ValueError):
    """A message event status change that does not move strictly forward."""

    def __init__(self, current: str, target: str):
        super().__init__(f"Cannot move message event from '{current}' to '{target}'")
        self.current = current
        self.target = target
