from __future__ import annotations


class CoreError(Exception):
    """Base for every recoverable failure raised by the membership core."""

    code = "core_error"


class InvalidDate(CoreError):
    code = "invalid_date"


class Unauthorized(CoreError):
    code = "unauthorized"


class NotFound(CoreError):
    code = "not_found"


class InvalidTransition(CoreError):
    code = "invalid_transition"


class InvalidInput(CoreError):
    code = "invalid_input"
