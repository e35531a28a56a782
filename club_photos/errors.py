"""Error taxonomy shared by the request path and the worker."""


class PhotoServiceError(Exception):
    status_code = 500

    @property
    def kind(self) -> str:
        return type(self).__name__

    @property
    def detail(self) -> str:
        return str(self) or self.kind


class NotFound(PhotoServiceError):
    status_code = 404


class Forbidden(PhotoServiceError):
    status_code = 403


class BadRequest(PhotoServiceError):
    status_code = 400


class StorageError(PhotoServiceError):
    status_code = 502


class TransientIO(StorageError):
    """Network failure or timeout talking to the object store; retryable."""
    status_code = 503


class ExtractionFailure(PhotoServiceError):
    """Metadata/preview tooling failed. The worker always recovers from this."""


class ProcessingFailure(PhotoServiceError):
    """Unrecoverable worker error, recorded on the photo and retried by the queue."""
