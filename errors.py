"""
Error types raised while provisioning the lab.
"""

from typing import Any, Dict, Optional

import requests

ALREADY_EXISTS_CODES = ["Conflict", "RoleAssignmentExists", "AlreadyExists", "ResourceExists"]
FORBIDDEN_CODES = ["AuthorizationFailed", "Authorization_RequestDenied", "Forbidden", "InvalidAuthenticationToken"]
QUOTA_CODES = ["QuotaExceeded", "Directory_QuotaExceeded", "SubscriptionQuotaExceeded", "RegistryQuotaExceeded"]


class ValidationError(Exception):
    """Input does not satisfy a local policy. Handled by asking again."""


# Errors that prevent the run from completing successfully
class FatalError(Exception):
    """An error that prevents the lab from being provisioned."""

    def __init__(self, message: str, step: Optional[str] = None):
        super().__init__(message)
        self.step = step

    def __str__(self) -> str:
        message = super().__str__()
        if self.step:
            return f"[{self.step}] {message}"
        return message


class TimeoutError(FatalError):
    """Polling exhausted its attempts before the resource reached the expected state."""


class AuthenticationError(FatalError):
    """No access token could be obtained."""


class SubstitutionError(FatalError):
    """A template placeholder is missing or a credential value is empty."""


class BuildError(FatalError):
    """The remote image build finished without succeeding."""


class ProvisionError(FatalError):
    """A remote create or update call was rejected."""

    def __init__(self, message: str, step: Optional[str] = None, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message, step)
        self.code = code
        self.status_code = status_code


class AlreadyExistsError(ProvisionError):
    """The resource or principal already exists."""


class ForbiddenError(ProvisionError):
    """The signed-in operator is not allowed to perform the call."""


class QuotaExceededError(ProvisionError):
    """The subscription or directory quota has been reached."""


def parse_error_payload(response: requests.Response) -> Dict[str, Any]:
    """
    Extract the error object from an ARM or Graph error response.

    Both APIs answer with {"error": {"code": ..., "message": ...}}.
    """
    try:
        body = response.json()
    except ValueError:
        return {"code": None, "message": response.text[:500]}
    if isinstance(body, dict) and isinstance(body.get("error"), dict):
        return body["error"]
    return {"code": None, "message": response.text[:500]}


def provision_error_from_response(response: requests.Response, step: Optional[str] = None) -> ProvisionError:
    """
    Build the ProvisionError subclass matching a failed response.

    Args:
        response: The rejected HTTP response
        step: Name of the provisioning step that issued the request

    Returns:
        An AlreadyExistsError, ForbiddenError, QuotaExceededError or a plain ProvisionError
    """
    error = parse_error_payload(response)
    code = error.get("code") or ""
    message = error.get("message") or response.text[:500]
    text = f"HTTP {response.status_code}: {code} - {message}" if code else f"HTTP {response.status_code}: {message}"

    if "quota" in code.lower() or "quota" in message.lower() or code in QUOTA_CODES:
        error_type = QuotaExceededError
    elif response.status_code == 409 or code in ALREADY_EXISTS_CODES or "already exists" in message.lower():
        error_type = AlreadyExistsError
    elif response.status_code in (401, 403) or code in FORBIDDEN_CODES:
        error_type = ForbiddenError
    else:
        error_type = ProvisionError
    return error_type(text, step=step, code=code or None, status_code=response.status_code)
