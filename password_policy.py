"""
Complexity policy for the lab user's password.
"""

import getpass
import logging
from typing import Callable, List, Union

from pydantic import SecretStr

from errors import ValidationError

MIN_PASSWORD_LENGTH = 12


def _reveal(candidate: Union[str, SecretStr]) -> str:
    if isinstance(candidate, SecretStr):
        return candidate.get_secret_value()
    return candidate


def missing_requirements(candidate: Union[str, SecretStr]) -> List[str]:
    """Return the policy rules the candidate fails, empty when it passes."""
    value = _reveal(candidate)
    missing = []
    if len(value) < MIN_PASSWORD_LENGTH:
        missing.append(f"at least {MIN_PASSWORD_LENGTH} characters")
    if not any(ch.isupper() for ch in value):
        missing.append("an uppercase letter")
    if not any(ch.islower() for ch in value):
        missing.append("a lowercase letter")
    if not any(ch.isdigit() for ch in value):
        missing.append("a digit")
    if not any(not ch.isalnum() for ch in value):
        missing.append("a symbol")
    return missing


def validate(candidate: Union[str, SecretStr]) -> bool:
    return not missing_requirements(candidate)


def require_valid(candidate: Union[str, SecretStr]) -> SecretStr:
    """Wrap a valid password, raise ValidationError otherwise."""
    missing = missing_requirements(candidate)
    if missing:
        raise ValidationError("Password must contain " + ", ".join(missing))
    return candidate if isinstance(candidate, SecretStr) else SecretStr(candidate)


def prompt_for_password(prompt_func: Callable[[str], str] = getpass.getpass) -> SecretStr:
    """
    Prompt until the operator enters a password that satisfies the policy.

    There is no attempt limit; the loop only ends on a valid password
    (or Ctrl-C).

    Args:
        prompt_func: Masked input function, getpass by default

    Returns:
        The accepted password wrapped in a SecretStr
    """
    while True:
        candidate = prompt_func("Password for the lab user: ")
        try:
            return require_valid(candidate)
        except ValidationError as e:
            logging.warning(f"{e}. Try again.")
        finally:
            del candidate
