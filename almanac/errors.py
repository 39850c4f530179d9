"""Error types raised by the garden core and mapped to HTTP responses in api.py."""


class AlmanacError(Exception):
    status_code = 500
    message = "Internal server error"

    def __init__(self, message=None):
        super().__init__(message or self.message)
        if message:
            self.message = message


class Unauthenticated(AlmanacError):
    status_code = 401
    message = "Unauthorized"


class NotFound(AlmanacError):
    """Missing garden *or* a garden owned by someone else. Callers cannot tell which."""
    status_code = 404
    message = "Garden not found"


class ValidationError(AlmanacError):
    status_code = 400
    message = "Invalid request"

    def __init__(self, fields, message=None):
        super().__init__(message)
        self.fields = dict(fields)


class AggregationFailed(AlmanacError):
    status_code = 503
    message = "Failed to fetch analytics data"
