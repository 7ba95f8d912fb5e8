"""Typed business failures raised by the domain, application and adapters.

Every failure carries a numeric business code; ``core.exceptions`` turns the
code into an HTTP status and the unified error envelope. Nothing here imports
the web stack.
"""
from __future__ import annotations

from typing import Any, Optional

from shared.codes import BusinessCode


class BusinessException(Exception):
    """
    Base for every typed failure

    ``message_key`` names the i18n template; ``details`` both feed the template
    and travel to the client under ``error.details``.
    """

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict[str, Any]] = None,
        field: Optional[str] = None,
        message_key: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        self.message_key = message_key

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={int(self.code)}, message={self.message!r})"


class DomainValidationException(BusinessException):
    """An entity or value object refused its input."""

    def __init__(self, message: str, *, field: str | None = None, details: dict | None = None):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
            message_key="validation.domain",
        )
