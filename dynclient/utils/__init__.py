"""Utility functions for dynclient."""

from dynclient.utils.helpers import convert_keys, full_name, is_absolute_uri, safe_dict, type_name
from dynclient.utils.exceptions import (
    DynClientError,
    ArgumentError,
    ArgumentMismatchError,
    UriFormatError,
    OutOfRangeError,
    MethodNotFoundError,
    ResolutionError,
    MetadataResolutionError,
    UnknownContractError,
    EndpointNotFoundError,
    CodeGenerationError,
    CompilerError,
    ProxyTypeNotFoundError,
    ChannelFaultError,
    RemoteFaultError,
    InvocationError,
    ObjectDisposedError,
    SchemaValidationError,
    ErrorCategory,
    classify_exception,
    sanitize_error_message,
    log_fatal,
)

__all__ = [
    "convert_keys",
    "full_name",
    "is_absolute_uri",
    "safe_dict",
    "type_name",
    "DynClientError",
    "ArgumentError",
    "ArgumentMismatchError",
    "UriFormatError",
    "OutOfRangeError",
    "MethodNotFoundError",
    "ResolutionError",
    "MetadataResolutionError",
    "UnknownContractError",
    "EndpointNotFoundError",
    "CodeGenerationError",
    "CompilerError",
    "ProxyTypeNotFoundError",
    "ChannelFaultError",
    "RemoteFaultError",
    "InvocationError",
    "ObjectDisposedError",
    "SchemaValidationError",
    "ErrorCategory",
    "classify_exception",
    "sanitize_error_message",
    "log_fatal",
]
