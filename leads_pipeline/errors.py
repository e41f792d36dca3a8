from enum import Enum
from typing import Dict, Optional, Type


class ErrorKind(str, Enum):
    NO_FILES_SELECTED = "NoFilesSelected"
    DOCUMENT_PARSE_ERROR = "DocumentParseError"
    EMPTY_RESULT = "EmptyResultError"
    INVALID_CREDENTIALS = "InvalidCredentials"
    RATE_LIMITED = "RateLimited"
    CONTENT_BLOCKED = "ContentBlocked"
    MALFORMED_RESPONSE = "MalformedResponse"
    UNCLASSIFIED_SERVICE_ERROR = "UnclassifiedServiceError"


class PipelineError(RuntimeError):
    """
    Erreur terminale d'une exécution du pipeline.

    `message` est le texte destiné à l'utilisateur final; l'erreur technique
    d'origine reste attachée via `__cause__` et n'est visible que dans les logs.
    """

    kind: ErrorKind = ErrorKind.UNCLASSIFIED_SERVICE_ERROR
    default_message: str = (
        "Failed to extract data. The AI model could not process the request. "
        "Please check your network connection and try again."
    )

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def __str__(self):
        return self.message


class NoFilesSelectedError(PipelineError):
    kind = ErrorKind.NO_FILES_SELECTED
    default_message = "Please select one or more files first."


class DocumentParseError(PipelineError):
    kind = ErrorKind.DOCUMENT_PARSE_ERROR
    default_message = "Could not process the PDF file. It might be corrupted or in an unsupported format."


class EmptyResultError(PipelineError):
    kind = ErrorKind.EMPTY_RESULT
    default_message = "Could not extract any images from the provided file(s). Please check the file formats."


class InvalidCredentialsError(PipelineError):
    kind = ErrorKind.INVALID_CREDENTIALS
    default_message = (
        "The extraction service rejected the configured credentials. "
        "This is a configuration problem, not an issue with your document."
    )


class RateLimitedError(PipelineError):
    kind = ErrorKind.RATE_LIMITED
    default_message = "The extraction service is receiving too many requests. Please wait a moment and try again."


class ContentBlockedError(PipelineError):
    kind = ErrorKind.CONTENT_BLOCKED
    default_message = "The document was blocked by the service's content policy. Please try a different file."


class MalformedResponseError(PipelineError):
    kind = ErrorKind.MALFORMED_RESPONSE
    default_message = (
        "The AI model returned an invalid format, possibly because of the document's complexity. "
        "Please try again."
    )


class UnclassifiedServiceError(PipelineError):
    kind = ErrorKind.UNCLASSIFIED_SERVICE_ERROR


_ERRORS_BY_KIND: Dict[ErrorKind, Type[PipelineError]] = {
    cls.kind: cls
    for cls in (
        NoFilesSelectedError,
        DocumentParseError,
        EmptyResultError,
        InvalidCredentialsError,
        RateLimitedError,
        ContentBlockedError,
        MalformedResponseError,
        UnclassifiedServiceError,
    )
}


def error_for_kind(kind: ErrorKind, message: Optional[str] = None) -> PipelineError:
    return _ERRORS_BY_KIND[kind](message)
