# calcgrade/services/exceptions.py


class ProviderError(Exception):
    """An external provider (OCR, LLM, storage) was unreachable or refused the call."""


class StorageError(ProviderError):
    pass


class MalformedResponseError(Exception):
    """The provider answered, but the body is not the JSON we asked for."""


class ServiceError(Exception):
    """Business-rule violation; rendered by the API as {"detail": message}."""

    status_code = 400


class NotFoundError(ServiceError):
    status_code = 404


class PermissionDeniedError(ServiceError):
    status_code = 403


class ConflictError(ServiceError):
    status_code = 409


class SubmissionNotFound(NotFoundError):
    pass


class InvalidStatusTransition(Exception):
    pass
