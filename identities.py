"""
Creation of the lab's human user and service principal identities.

Every identity created here keeps a standing role assignment for as long as
the lab exists. Nothing in the deploy path revokes or time-boxes them; the
teardown command is the only cleanup.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from pydantic import SecretStr

import arm_api
import config as cfg
import graph_api
from errors import ProvisionError
from polling import poll_until

PRINCIPAL_NOT_FOUND = "PrincipalNotFound"


@dataclass(frozen=True)
class CredentialBundle:
    """Client credentials of a service principal."""

    client_id: str
    client_secret: SecretStr
    tenant_id: str


@dataclass(frozen=True)
class ServicePrincipal:
    display_name: str
    application_object_id: str
    service_principal_id: str
    role: str
    scope: str
    role_assignment_id: str
    credentials: CredentialBundle


def create_user(token: str, principal_name: str, password: SecretStr, domain: str) -> str:
    """
    Create the lab user principal_name@domain.

    Args:
        token: Graph API access token
        principal_name: Local part of the user principal name
        password: Initial password
        domain: Directory domain of the signed-in operator

    Returns:
        Object ID of the created user

    Raises:
        AlreadyExistsError: If a user with the same principal name exists
    """
    upn = f"{principal_name}@{domain}"
    logging.info(f"Creating user {upn}")
    user = graph_api.create_user(
        token,
        user_principal_name=upn,
        display_name=principal_name,
        mail_nickname=principal_name,
        password=password.get_secret_value(),
    )
    logging.info(f"✅ Created user {upn} ({user['id']})")
    return user["id"]


def assign_role_when_replicated(arm_token: str, subscription_id: str, principal_id: str, role: str, principal_type: str, scope: str) -> Dict[str, Any]:
    """
    Assign a role to a freshly created principal.

    New principals take a while to replicate from the directory to ARM, which
    answers PrincipalNotFound meanwhile. Only that answer is retried.

    Returns:
        Role assignment response dict
    """
    assignment: Dict[str, Any] = {}

    def assigned() -> bool:
        try:
            assignment.update(arm_api.assign_role(arm_token, subscription_id, principal_id, cfg.ROLE_IDS[role], principal_type, scope))
        except ProvisionError as e:
            if e.code == PRINCIPAL_NOT_FOUND:
                logging.debug(f"Principal {principal_id} not replicated yet")
                return False
            raise
        return True

    poll_until(
        assigned,
        cfg.ROLE_ASSIGNMENT_MAX_ATTEMPTS,
        cfg.ROLE_ASSIGNMENT_POLL_INTERVAL,
        f"{role} assignment for {principal_id}",
    )
    return assignment


def create_service_principal(
    graph_token: str,
    arm_token: str,
    subscription_id: str,
    tenant_id: str,
    name: str,
    role: str,
    scope: str,
    on_created: Optional[Callable[[Dict[str, str]], None]] = None,
) -> ServicePrincipal:
    """
    Create an application registration, its service principal and a client secret,
    then grant the principal a role.

    Args:
        graph_token: Graph API access token
        arm_token: Azure access token
        subscription_id: Subscription ID
        tenant_id: Tenant the credentials authenticate against
        name: Display name of the application registration
        role: Role name from config.ROLE_IDS
        scope: Scope of the role assignment
        on_created: Called with the directory object ids created so far, each
            time one is added, so a later failure still leaves them on record

    Returns:
        The created service principal with its credentials
    """
    logging.info(f"Creating service principal {name} with {role} on {scope}")
    created: Dict[str, str] = {}

    def record(**ids: str) -> None:
        created.update(ids)
        if on_created:
            on_created(dict(created))

    application = graph_api.create_application(graph_token, name)
    record(applicationObjectId=application["id"], appId=application["appId"])
    service_principal = graph_api.create_service_principal(graph_token, application["appId"])
    record(servicePrincipalId=service_principal["id"])
    password = graph_api.add_application_password(graph_token, application["id"], f"{name}-secret")

    assignment = assign_role_when_replicated(arm_token, subscription_id, service_principal["id"], role, "ServicePrincipal", scope)

    credentials = CredentialBundle(
        client_id=application["appId"],
        client_secret=SecretStr(password["secretText"]),
        tenant_id=tenant_id,
    )
    logging.info(f"✅ Created service principal {name} (appId {credentials.client_id})")
    return ServicePrincipal(
        display_name=name,
        application_object_id=application["id"],
        service_principal_id=service_principal["id"],
        role=role,
        scope=scope,
        role_assignment_id=assignment.get("id", ""),
        credentials=credentials,
    )


def assign_user_role(arm_token: str, subscription_id: str, user_id: str, role: str, scope: Optional[str] = None) -> str:
    """
    Grant the lab user a role, on the subscription by default.

    Returns:
        The role assignment ID
    """
    scope = scope or arm_api.subscription_scope(subscription_id)
    assignment = assign_role_when_replicated(arm_token, subscription_id, user_id, role, "User", scope)
    logging.info(f"✅ Assigned {role} to user {user_id} on {scope}")
    return assignment.get("id", "")


def grant_application_ownership(graph_token: str, application_object_id: str, owner_object_id: str) -> None:
    graph_api.add_application_owner(graph_token, application_object_id, owner_object_id)
    logging.info(f"✅ {owner_object_id} now owns application {application_object_id}")
