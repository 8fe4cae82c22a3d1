from __future__ import annotations


class PersonalizationError(RuntimeError):
    """Base class for failures surfaced at the HTTP boundary.

    ``message`` is safe to show to callers; anything sensitive belongs in the
    log record, not here.
    """

    status_code = 500

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(PersonalizationError):
    status_code = 400


class AuthenticationError(PersonalizationError):
    status_code = 403


class NotFoundError(PersonalizationError):
    status_code = 404


class MethodNotAllowedError(PersonalizationError):
    status_code = 405


class InsufficientCreditsError(PersonalizationError):
    status_code = 402


class UpstreamError(PersonalizationError):
    """Renderer, blob store or cache store failed.

    ``detail`` is the collaborator's message and is only logged. Callers see
    ``public_message``.
    """

    status_code = 500
    public_message = "Render failed"

    def __init__(self, detail: str, *, status_code: int | None = None) -> None:
        super().__init__(detail, status_code=status_code)
        self.detail = detail
