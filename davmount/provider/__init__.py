"""
Modules that serve the file system requests of the host runtime.

The host runtime delivers requests over RPC to the provider service, which hands them
to the request dispatcher. The dispatcher resolves the mount, calls the handler for
the kind of request, and packages the outcome as a Response.
"""

from .common import ErrorCode, RequestKind, Response, error_code
from .dispatcher import RequestDispatcher
from .service import ProviderService

__all__ = [
    "ErrorCode",
    "ProviderService",
    "RequestDispatcher",
    "RequestKind",
    "Response",
    "error_code",
]
