"""Typed failures raised by the service layer.

Routes never build these by hand: services raise them and the handlers
registered in ``app.main`` turn them into JSON error responses.
"""


class AuraError(Exception):
    """Base class for expected, typed failures."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(AuraError):
    """Entity missing or not owned by the caller.

    The message is identical in both cases so other users' ids cannot be probed.
    """

    status_code = 404

    def __init__(self, resource: str, resource_id: int | None = None) -> None:
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} not found")


class InvalidInputError(AuraError):
    status_code = 422


class ExternalServiceError(AuraError):
    """Text-generation or notification endpoint failed."""

    status_code = 502

    def __init__(self, service: str, message: str) -> None:
        self.service = service
        super().__init__(f"{service}: {message}")
