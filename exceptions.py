class MagnifyError(Exception):
    """Base exception for all Magnify errors."""

    status_code: int = 500
    error_code: str = "internal_error"

    def __init__(self, message: str, **kwargs):
        self.message = message
        self.details = kwargs
        super().__init__(message)


class BadRequestError(MagnifyError):
    """Malformed request body, invalid options JSON, missing file."""

    status_code = 400
    error_code = "bad_request"


class FileTooLargeError(MagnifyError):
    """File exceeds maximum allowed size."""

    status_code = 413
    error_code = "file_too_large"


class UnsupportedFormatError(MagnifyError):
    """Neither the media type nor the file extension names GIF or WebP."""

    status_code = 415
    error_code = "unsupported_format"


class ImageTooLargeError(MagnifyError):
    """Canvas too large to decode or to upscale at any accepted scale."""

    status_code = 413
    error_code = "image_too_large"


class InvalidScaleError(MagnifyError):
    """Scale factor outside the accepted integer range."""

    status_code = 422
    error_code = "invalid_scale"


class CorruptContainerError(MagnifyError):
    """Container or frame data could not be parsed."""

    status_code = 422
    error_code = "corrupt_container"


class EncodeError(MagnifyError):
    """Empty or inconsistent frame set reached an encoder.

    Frames are validated before encoding, so seeing this in normal
    operation points at a pipeline defect.
    """

    status_code = 500
    error_code = "encode_failed"


class ConversionCancelledError(MagnifyError):
    """Conversion was cancelled at a frame boundary."""

    status_code = 409
    error_code = "conversion_cancelled"


class BackpressureError(MagnifyError):
    """Conversion queue is full."""

    status_code = 503
    error_code = "service_overloaded"
