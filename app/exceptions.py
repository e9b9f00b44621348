"""
Domain exceptions raised by the service layer.

Services never build HTTP responses; they raise one of these and the
handlers registered in ``app.error_handlers`` map them to status codes.
"""


class ContentAPIError(Exception):
    """Base class for errors surfaced by the content services."""

    status_code = 400
    error_code = "CONTENT_API_ERROR"

    def __init__(self, message: str, details=None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)


class EntryNotFoundError(ContentAPIError):
    status_code = 404
    error_code = "NOT_FOUND"

    def __init__(self, content_type: str, entry_id) -> None:
        super().__init__(
            f"{content_type} entry {entry_id!r} not found",
            details={"content_type": content_type, "id": entry_id},
        )
        self.content_type = content_type
        self.entry_id = entry_id


class UnknownAttributeError(ContentAPIError):
    error_code = "UNKNOWN_ATTRIBUTE"

    def __init__(self, content_type: str, name: str) -> None:
        super().__init__(
            f"{content_type} has no attribute or association named {name!r}",
            details={"content_type": content_type, "name": name},
        )
        self.content_type = content_type
        self.name = name


class InvalidParameterError(ContentAPIError):
    error_code = "INVALID_PARAMETER"
