"""Custom exception hierarchy for Scout.

All application-specific exceptions inherit from ScoutError,
which carries an error code for structured error payloads.
"""

from __future__ import annotations

from typing import Any


class ScoutError(Exception):
    """Base exception for all Scout errors."""

    def __init__(self, message: str, *, code: str = "INTERNAL_ERROR") -> None:
        super().__init__(message)
        self.code = code


class GatewayError(ScoutError):
    """Errors in the HTTP / WebSocket layer."""

    def __init__(self, message: str, *, code: str = "GATEWAY_ERROR") -> None:
        super().__init__(message, code=code)


class AgentError(ScoutError):
    """Errors in the orchestration runtime."""

    def __init__(self, message: str, *, code: str = "AGENT_ERROR") -> None:
        super().__init__(message, code=code)


class LLMError(AgentError):
    """Transport failures from model API calls (timeouts, rate limits, failures).

    Fatal to the current chat request.
    """

    def __init__(self, message: str, *, code: str = "LLM_ERROR") -> None:
        super().__init__(message, code=code)


class ClassificationError(AgentError):
    """Task classification failed. Never surfaced to callers."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="CLASSIFICATION_FAILED")


class ToolError(AgentError):
    """Errors during tool resolution or execution."""

    def __init__(
        self, message: str, *, code: str = "TOOL_ERROR", details: Any = None
    ) -> None:
        super().__init__(message, code=code)
        self.details = details


class ToolNotFoundError(ToolError):
    """No tool registered under the requested id or key."""

    def __init__(self, tool_id: str) -> None:
        super().__init__(f"Tool not found: {tool_id}", code="TOOL_NOT_FOUND")
        self.tool_id = tool_id


class ToolInputInvalidError(ToolError):
    """Model-supplied arguments do not satisfy the tool's input contract."""

    def __init__(self, message: str = "Input validation failed", *, details: Any = None) -> None:
        super().__init__(message, code="INVALID_INPUT", details=details)


class ToolPermissionDeniedError(ToolError):
    """Execution context lacks the tool's required permission."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="PERMISSION_DENIED")


class ToolRuntimeError(ToolError):
    """Tool business logic raised while executing."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="EXECUTION_ERROR")
