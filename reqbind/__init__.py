"""Content-negotiated request decoding with bottom-up bind hooks."""

__version__ = "0.1.0"

from .binder import (
    MAX_RECURSION_DEPTH,
    BindEngine,
    DescriptorCache,
    action,
    default_engine,
    get_decode,
    set_decode,
)
from .capability import Binder
from .content_type import ContentType, resolve_content_type
from .decoder import (
    Decoder,
    DecoderRegistry,
    default_decode,
    default_registry,
    get_decoder,
    populate_files,
    register_decoder,
    set_max_multipart_memory,
)
from .exceptions import (
    BindError,
    DecodeError,
    InvalidArgumentError,
    RecursionLimitError,
    ReqbindError,
    UnsupportedContentTypeError,
    error_to_json,
    error_to_map,
)
from .http import MultipartForm, Request, UploadFile
from .structure import tagged_field

__all__ = [
    "__version__",
    "MAX_RECURSION_DEPTH",
    "BindEngine",
    "BindError",
    "Binder",
    "ContentType",
    "DecodeError",
    "Decoder",
    "DecoderRegistry",
    "DescriptorCache",
    "InvalidArgumentError",
    "MultipartForm",
    "RecursionLimitError",
    "ReqbindError",
    "Request",
    "UnsupportedContentTypeError",
    "UploadFile",
    "action",
    "default_decode",
    "default_engine",
    "default_registry",
    "error_to_json",
    "error_to_map",
    "get_decode",
    "get_decoder",
    "populate_files",
    "register_decoder",
    "resolve_content_type",
    "set_decode",
    "set_max_multipart_memory",
    "tagged_field",
]
