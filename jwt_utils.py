"""
Access token claims. Signatures are not verified: the tokens come straight
from the sign-in and are only read for identifiers.
"""

import base64
import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict

from errors import AuthenticationError

# claim -> label shown by inspect_azure_token
INSPECTED_CLAIMS = {
    'aud': "Audience",
    'unique_name': "Unique name",
    'oid': "Object ID",
    'tid': "Tenant ID",
    'appid': "App ID",
    'scp': "Scopes",
}


def decode_jwt_payload(token: str) -> Dict[str, Any]:
    """
    Decode the payload segment of a JWT.

    Raises:
        AuthenticationError: If the token is not a decodable JWT
    """
    parts = token.split('.')
    if len(parts) != 3:
        raise AuthenticationError("Access token is not a JWT (expected 3 dot-separated parts)")

    segment = parts[1] + '=' * (-len(parts[1]) % 4)
    try:
        return json.loads(base64.urlsafe_b64decode(segment).decode('utf-8'))
    except (ValueError, UnicodeDecodeError) as e:
        raise AuthenticationError(f"Cannot decode access token payload: {e}") from e


def get_claim(token: str, claim: str) -> Any:
    value = decode_jwt_payload(token).get(claim)
    if not value:
        raise AuthenticationError(f"Access token has no '{claim}' claim")
    return value


def get_tenant_id(token: str) -> str:
    return get_claim(token, 'tid')


def format_timestamp(timestamp: int) -> str:
    try:
        return datetime.fromtimestamp(timestamp, tz=timezone.utc).strftime('%Y-%m-%d %H:%M:%S UTC')
    except (TypeError, ValueError, OverflowError, OSError):
        return f"Invalid timestamp: {timestamp}"


def inspect_azure_token(token: str, verbose: bool = False) -> None:
    """Log the identifying claims of an access token at debug level."""
    if not verbose:
        return

    try:
        payload = decode_jwt_payload(token)
    except AuthenticationError as e:
        logging.warning(f"⚠️  {e}")
        return

    logging.debug("🔍 Access token claims")
    for claim, label in INSPECTED_CLAIMS.items():
        logging.debug(f"  {label} ({claim}): {payload.get(claim, 'Not specified')}")

    exp = payload.get('exp')
    if exp:
        expired = " (EXPIRED)" if exp < datetime.now(tz=timezone.utc).timestamp() else ""
        logging.debug(f"  Expires at (exp): {format_timestamp(exp)}{expired}")
