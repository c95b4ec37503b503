"""Per-invocation errors for Learning Relay tools."""


class ToolError(Exception):
    """Base error for a single tool invocation.

    The message is sent back to the assistant as ``{"error": message}``.
    """

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(ToolError):
    """Unknown tool, malformed arguments, or null input."""


class NotFoundError(ToolError):
    """No catalog entry matched confidently enough."""


class UpstreamError(ToolError):
    """External catalog or learning-path call failed or timed out."""
