"""
Microsoft Graph API module for users, application registrations and service principals.
"""

import requests
import logging
from typing import Optional, Dict, Any
import config as cfg
from errors import ProvisionError, provision_error_from_response

GRAPH_BASE_URL = f"{cfg.GRAPH_RESOURCE}{cfg.GRAPH_API_VERSION}"


def make_request(method: str, url: str, token: str, json_data: Optional[Dict[str, Any]] = None, step: Optional[str] = None) -> Dict[str, Any]:
    """
    Make a request to Microsoft Graph.

    Returns:
        Response JSON, or an empty dict for 204 responses

    Raises:
        ProvisionError: (or a subclass) if the request is rejected or cannot be sent
    """
    headers = {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json"
    }

    try:
        response = requests.request(method, url, headers=headers, json=json_data)
    except requests.exceptions.RequestException as e:
        logging.error(f"Request failed: {e}")
        raise ProvisionError(f"Request failed: {e}", step=step) from e

    if not response.ok:
        error = provision_error_from_response(response, step=step)
        logging.debug(f"{method} {url} rejected\nAPI Response: {response.text}")
        raise error

    if not response.content:
        return {}
    return response.json()


def get_current_user(token: str) -> Dict[str, Any]:
    """
    Get the signed-in operator's directory record.

    Args:
        token: Graph API access token

    Returns:
        User information dict (id, userPrincipalName, ...)
    """
    return make_request("GET", f"{GRAPH_BASE_URL}/me", token, step="resolve operator domain")


def create_user(token: str, user_principal_name: str, display_name: str, mail_nickname: str, password: str) -> Dict[str, Any]:
    """
    Create a member user in the directory.

    Args:
        token: Graph API access token
        user_principal_name: UPN of the new user (name@domain)
        display_name: Display name
        mail_nickname: Mail alias
        password: Initial password, sent once in the request body

    Returns:
        Created user dict
    """
    payload = {
        "accountEnabled": True,
        "displayName": display_name,
        "mailNickname": mail_nickname,
        "userPrincipalName": user_principal_name,
        "passwordProfile": {
            "forceChangePasswordNextSignIn": False,
            "password": password
        }
    }
    return make_request("POST", f"{GRAPH_BASE_URL}/users", token, payload, step="create user")


def delete_user(token: str, user_id: str) -> None:
    make_request("DELETE", f"{GRAPH_BASE_URL}/users/{user_id}", token, step="delete user")


def create_application(token: str, display_name: str) -> Dict[str, Any]:
    """Create an application registration. Returns a dict with "id" (object ID) and "appId"."""
    return make_request("POST", f"{GRAPH_BASE_URL}/applications", token, {"displayName": display_name}, step="create application")


def delete_application(token: str, application_object_id: str) -> None:
    """Delete an application registration; its service principal goes with it."""
    make_request("DELETE", f"{GRAPH_BASE_URL}/applications/{application_object_id}", token, step="delete application")


def create_service_principal(token: str, app_id: str) -> Dict[str, Any]:
    """Create the service principal of an application registration."""
    return make_request("POST", f"{GRAPH_BASE_URL}/servicePrincipals", token, {"appId": app_id}, step="create service principal")


def add_application_password(token: str, application_object_id: str, display_name: str) -> Dict[str, Any]:
    """
    Add a client secret to an application registration.

    Returns:
        Password credential dict; "secretText" is only ever returned here
    """
    payload = {
        "passwordCredential": {
            "displayName": display_name
        }
    }
    return make_request("POST", f"{GRAPH_BASE_URL}/applications/{application_object_id}/addPassword", token, payload, step="create service principal secret")


def add_application_owner(token: str, application_object_id: str, owner_object_id: str) -> None:
    """Add a directory object as an owner of an application registration."""
    payload = {
        "@odata.id": f"{GRAPH_BASE_URL}/directoryObjects/{owner_object_id}"
    }
    make_request("POST", f"{GRAPH_BASE_URL}/applications/{application_object_id}/owners/$ref", token, payload, step="add application owner")
