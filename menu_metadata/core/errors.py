from __future__ import annotations


class MenuMetadataError(Exception):
    """Base class for errors surfaced to the user."""


class ValidationError(MenuMetadataError):
    """Input rejected before any request is sent."""


class SubmissionInFlight(ValidationError):
    pass


class SessionNotFound(MenuMetadataError):
    def __init__(self, session_id: str) -> None:
        super().__init__(f"Unknown session: {session_id}")
        self.session_id = session_id


class MissingCredentialError(RuntimeError):
    pass


class GenerationError(MenuMetadataError):
    kind = "Generation error"


class ServiceError(GenerationError):
    kind = "Gemini API error"

    def __init__(self, service: str, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.service = service
        self.status_code = status_code


class MalformedResponse(GenerationError):
    kind = "Malformed response"


class IncompleteResult(GenerationError):
    kind = "Incomplete result"
