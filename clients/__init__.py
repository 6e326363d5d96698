from .errors import (
    DecodeError,
    InvalidInputError,
    NetworkError,
    ProtocolError,
    RemoteJobCanceled,
    RemoteJobFailed,
    StyleTransferError,
    StyleTransferTimeout,
)
from .replicate_client import ReplicateClient
from .retry import RetryPolicy, should_retry
from .style_service_client import (
    ApiError,
    ApiErrorKind,
    ApiResponse,
    StyleServiceClient,
    TextureResponse,
)

__all__ = [
    "ApiError",
    "ApiErrorKind",
    "ApiResponse",
    "DecodeError",
    "InvalidInputError",
    "NetworkError",
    "ProtocolError",
    "RemoteJobCanceled",
    "RemoteJobFailed",
    "ReplicateClient",
    "RetryPolicy",
    "StyleServiceClient",
    "StyleTransferError",
    "StyleTransferTimeout",
    "TextureResponse",
    "should_retry",
]
