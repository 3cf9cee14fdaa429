"""Typed failures raised by the URL shortening service layer.

The service never builds HTTP responses; routes translate these exceptions
into status codes. ``BackendFailureError`` keeps the driver error for logs
while its message stays generic.

Exception Hierarchy
===================
::
    ShortenerError
    ├─ CodeConflictError         (409)
    ├─ AllocationExhaustedError  (500)
    ├─ NotFoundError             (404, also used for expired codes)
    └─ BackendFailureError       (500)
"""

__all__ = [
    "AllocationExhaustedError",
    "BackendFailureError",
    "CodeConflictError",
    "NotFoundError",
    "ShortenerError",
]


class ShortenerError(Exception):
    """Base class for all service-level failures."""


class CodeConflictError(ShortenerError):
    def __init__(self, code: str):
        super().__init__(f"Short code '{code}' is already taken")
        self.code = code


class AllocationExhaustedError(ShortenerError):
    def __init__(self, attempts: int):
        super().__init__(f"Failed to generate a unique short code after {attempts} attempts")
        self.attempts = attempts


class NotFoundError(ShortenerError):
    def __init__(self, code: str):
        super().__init__(f"Short code '{code}' not found")
        self.code = code


class BackendFailureError(ShortenerError):
    def __init__(self, operation: str, original: Exception):
        super().__init__(f"Backend failure during {operation}")
        self.operation = operation
        self.original = original
