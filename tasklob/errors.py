"""Error taxonomy shared by the parsing, resolution and enrichment layers."""


class TaskLobError(RuntimeError):
    """Base class for all typed pipeline failures."""


class InvalidInputError(TaskLobError):
    """Raised when raw lob text is empty or malformed, before any external call."""


class ProviderError(TaskLobError):
    """Raised when the completion provider fails (network, rate limit, auth, refusal)."""


class ParseFailure(TaskLobError):
    """Raised when a parse call cannot produce a usable result."""


class MalformedOutputError(ParseFailure):
    """Raised when model output is not JSON even after the fenced-block repair attempt."""


class EnrichmentCancelled(TaskLobError):
    """Raised when an enrichment call times out or is cancelled by the caller."""
