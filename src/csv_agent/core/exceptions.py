"""Exceptions for the CSV agent."""


class CSVAgentError(Exception):
    """Base exception for CSV agent errors."""
    pass


class SessionNotFoundError(CSVAgentError):
    """Raised when a chat session does not exist."""

    def __init__(self, session_id: str):
        self.session_id = session_id
        super().__init__(f"Session not found: {session_id}")


class ResourceNotFoundError(CSVAgentError):
    """Raised when a CSV resource does not exist (or is not attached to the session)."""

    def __init__(self, resource_id: str):
        self.resource_id = resource_id
        super().__init__(f"Resource not found: {resource_id}")


class ResourceValidationError(CSVAgentError):
    """Raised when an upload or URL fetch is rejected."""
    pass


class ParseError(CSVAgentError):
    """Raised when CSV content is not validly delimited."""
    pass


class UnsafeQueryError(CSVAgentError):
    """Raised when a query is not a read-only SELECT statement."""
    pass


class QueryExecutionError(CSVAgentError):
    """Raised when the query engine rejects a read-only query."""
    pass


class InvalidToolArgsError(CSVAgentError):
    """Raised when tool arguments do not match the tool's parameter schema."""
    pass


class UnknownToolError(CSVAgentError):
    """Raised when the model requests a tool that is not registered."""
    pass


class CheckpointIOError(CSVAgentError):
    """Raised when the conversation checkpoint cannot be read or written."""
    pass


class ResourceTooLargeError(ResourceValidationError):
    """Raised when an upload or fetched file exceeds the configured size limit."""
    pass
