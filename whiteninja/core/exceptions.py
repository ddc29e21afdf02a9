"""
Custom Exceptions for White Ninja AI
====================================

Only validation, capacity and configuration errors are hard rejections of
the triggering action. Agent failures are retried inside the call envelope
and surface as informational events, never as exceptions.

Usage:
    from whiteninja.core.exceptions import CapacityError

    if not registry.can_start():
        raise CapacityError(settings.MAX_CONCURRENT_BUILDS)
"""

from typing import Optional, Any, Dict


class WhiteNinjaError(Exception):
    """Base exception for all White Ninja errors"""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# ============================================
# Validation Errors (400-type)
# ============================================

class ValidationError(WhiteNinjaError):
    """Input validation failed"""

    status_code = 400

    def __init__(self, message: str, field: Optional[str] = None):
        details = {"field": field} if field else {}
        super().__init__(message, code="VALIDATION_ERROR", details=details)


class InvalidPathError(ValidationError):
    """File path is empty or unusable after sanitization"""

    def __init__(self, path: str, reason: str = "Invalid file path"):
        super().__init__(f"{reason}: {path!r}", field="path")
        self.code = "INVALID_PATH"
        self.details["path"] = path


# ============================================
# Capacity / Availability Errors
# ============================================

class CapacityError(WhiteNinjaError):
    """Server-wide concurrent build ceiling reached"""

    status_code = 429

    def __init__(self, max_builds: int, retry_after_seconds: int = 60):
        super().__init__(
            f"Server is at capacity ({max_builds} concurrent builds). Please try again in a minute.",
            code="CAPACITY_EXCEEDED",
            details={"max_concurrent_builds": max_builds, "retry_after_seconds": retry_after_seconds}
        )
        self.retry_after_seconds = retry_after_seconds


class ServiceUnavailableError(WhiteNinjaError):
    """Required configuration (model API key) is missing"""

    status_code = 503

    def __init__(self, message: str = "Server is not configured with a valid API key"):
        super().__init__(message, code="SERVICE_UNAVAILABLE")


# ============================================
# State Errors
# ============================================

class InvalidTransitionError(WhiteNinjaError):
    """Phase transition not allowed by the transition table"""

    status_code = 409

    def __init__(self, from_state: str, to_state: str):
        super().__init__(
            f"Invalid phase transition: {from_state} -> {to_state}",
            code="INVALID_TRANSITION",
            details={"from": from_state, "to": to_state}
        )


# ============================================
# AI Service Errors
# ============================================

class AIServiceError(WhiteNinjaError):
    """Model provider call failed"""

    status_code = 502

    def __init__(self, message: str = "AI service error", agent_id: Optional[str] = None):
        details = {"agent_id": agent_id} if agent_id else {}
        super().__init__(message, code="AI_SERVICE_ERROR", details=details)


class AgentTimeoutError(AIServiceError):
    """Agent call exceeded the wall-clock timeout"""

    def __init__(self, agent_id: str, timeout_seconds: float):
        super().__init__(f"Agent {agent_id} timed out after {timeout_seconds:g}s", agent_id=agent_id)
        self.code = "AGENT_TIMEOUT"
        self.details["timeout_seconds"] = timeout_seconds


class EmptyAgentResponseError(AIServiceError):
    """Agent returned no text"""

    def __init__(self, agent_id: str):
        super().__init__(f"Empty response from agent {agent_id}", agent_id=agent_id)
        self.code = "AI_EMPTY_RESPONSE"


def error_response(error: WhiteNinjaError) -> Dict[str, Any]:
    """Convert exception to API error response"""
    return {
        "success": False,
        "error": error.to_dict()
    }
