class SourceError(RuntimeError):
    """Base class for failures talking to an external data source."""

    def __init__(self, message: str, *, source: str | None = None):
        super().__init__(message)
        self.source = source


class SourceUnavailable(SourceError):
    """Network failure, timeout or non-success status from an upstream source."""


class MalformedSource(SourceError):
    """Upstream answered, but with a document or payload shape we cannot use."""


class NotReady(RuntimeError):
    """A cache has never been populated; callers should retry later."""


class NotResolved(LookupError):
    """No candidate identity could be resolved for the requested name."""


class NotFound(LookupError):
    """Identity resolved, but the downstream data does not exist."""
