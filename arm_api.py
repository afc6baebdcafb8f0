"""
Azure Resource Manager (ARM) API module for the lab's control-plane calls.
"""

import requests
import logging
from typing import Optional, Dict, Any
from uuid import uuid4

import config as cfg
from errors import ProvisionError, provision_error_from_response


def _headers(token: str) -> Dict[str, str]:
    return {
        "Authorization": f"Bearer {token}",
        "Content-Type": "application/json"
    }


def make_request(method: str, url: str, token: str, json_data: Optional[Dict[str, Any]] = None, step: Optional[str] = None) -> Dict[str, Any]:
    """
    Make a request to the Azure Management API.

    Args:
        method: HTTP method (GET, POST, PUT, PATCH, DELETE)
        url: API endpoint URL
        token: Azure access token
        json_data: Optional JSON payload
        step: Provisioning step name attached to raised errors

    Returns:
        Response JSON, or an empty dict for responses without a body

    Raises:
        ProvisionError: (or a subclass) if the request is rejected or cannot be sent
    """
    try:
        response = requests.request(method, url, headers=_headers(token), json=json_data)
    except requests.exceptions.RequestException as e:
        logging.error(f"Request failed: {e}")
        raise ProvisionError(f"Request failed: {e}", step=step) from e

    if not response.ok:
        error = provision_error_from_response(response, step=step)
        logging.debug(f"{method} {url} rejected\nAPI Response: {response.text}")
        raise error

    if not response.content:
        return {}
    try:
        return response.json()
    except ValueError:
        return {}


def subscription_scope(subscription_id: str) -> str:
    return f"/subscriptions/{subscription_id}"


def resource_group_scope(subscription_id: str, resource_group: str) -> str:
    return f"/subscriptions/{subscription_id}/resourceGroups/{resource_group}"


def role_definition_id(subscription_id: str, role_guid: str) -> str:
    return f"/subscriptions/{subscription_id}/providers/Microsoft.Authorization/roleDefinitions/{role_guid}"


# =============================================================================
# Resource groups
# =============================================================================


def create_resource_group(token: str, subscription_id: str, rg_name: str, region: str) -> Dict[str, Any]:
    """
    Create (or update) a resource group.

    Args:
        token: Azure access token
        subscription_id: Target subscription ID
        rg_name: Resource group name
        region: Azure region

    Returns:
        Resource group creation response
    """
    payload = {
        "location": region,
        "tags": {
            "purpose": "container-lab"
        }
    }
    url = f"{cfg.AZURE_RESOURCE}/subscriptions/{subscription_id}/resourcegroups/{rg_name}?api-version={cfg.RESOURCE_GROUP_API_VERSION}"
    return make_request("PUT", url, token, payload, step="create resource group")


def delete_resource_group(token: str, subscription_id: str, rg_name: str) -> None:
    """Start an asynchronous delete of a resource group and everything in it."""
    url = f"{cfg.AZURE_RESOURCE}/subscriptions/{subscription_id}/resourcegroups/{rg_name}?api-version={cfg.RESOURCE_GROUP_API_VERSION}"
    make_request("DELETE", url, token, step="delete resource group")


# =============================================================================
# Resource providers
# =============================================================================


def get_provider_state(token: str, subscription_id: str, namespace: str) -> str:
    """
    Read the registration state of a resource provider namespace.

    Returns:
        The raw registrationState string (e.g. "Registered", "NotRegistered", "Registering")
    """
    url = f"{cfg.AZURE_RESOURCE}/subscriptions/{subscription_id}/providers/{namespace}?api-version={cfg.PROVIDER_API_VERSION}"
    provider = make_request("GET", url, token, step="read provider state")
    return provider.get("registrationState", "Unknown")


def register_provider(token: str, subscription_id: str, namespace: str) -> None:
    """Ask ARM to register a provider namespace. Registration completes asynchronously."""
    url = f"{cfg.AZURE_RESOURCE}/subscriptions/{subscription_id}/providers/{namespace}/register?api-version={cfg.PROVIDER_API_VERSION}"
    make_request("POST", url, token, step="register provider")


# =============================================================================
# Role assignments
# =============================================================================


def assign_role(token: str, subscription_id: str, principal_id: str, role_definition_guid: str, principal_type: str = "ServicePrincipal", scope: Optional[str] = None) -> Dict[str, Any]:
    """
    Assign a role to a principal at a specific scope.

    Args:
        token: Azure access token
        subscription_id: Subscription ID
        principal_id: Principal object ID to assign role to
        role_definition_guid: Role definition GUID (see config.ROLE_IDS)
        principal_type: Type of principal ("User", "ServicePrincipal", etc.)
        scope: Custom scope for the assignment (defaults to subscription scope)

    Returns:
        Role assignment response dict
    """
    assignment_scope = scope or subscription_scope(subscription_id)
    url = f"{cfg.AZURE_RESOURCE}{assignment_scope}/providers/Microsoft.Authorization/roleAssignments/{uuid4()}?api-version={cfg.ROLE_ASSIGNMENTS_API_VERSION}"

    payload = {
        "properties": {
            "principalId": principal_id,
            "principalType": principal_type,
            "roleDefinitionId": role_definition_id(subscription_id, role_definition_guid)
        }
    }
    return make_request("PUT", url, token, payload, step="assign role")


def remove_role_assignment(token: str, assignment_id: str) -> None:
    """
    Remove a role assignment by its full resource ID.

    Args:
        token: Azure access token
        assignment_id: Full role assignment ID as returned by assign_role
    """
    url = f"{cfg.AZURE_RESOURCE}{assignment_id}?api-version={cfg.ROLE_ASSIGNMENTS_API_VERSION}"
    make_request("DELETE", url, token, step="remove role assignment")


# =============================================================================
# Container registry
# =============================================================================


def registry_id(subscription_id: str, resource_group: str, name: str) -> str:
    return f"{resource_group_scope(subscription_id, resource_group)}/providers/Microsoft.ContainerRegistry/registries/{name}"


def create_registry(token: str, subscription_id: str, resource_group: str, name: str, region: str) -> Dict[str, Any]:
    """
    Create a Basic SKU container registry with the admin user enabled.

    Returns:
        Registry creation response (provisioning may still be in progress)
    """
    payload = {
        "location": region,
        "sku": {"name": "Basic"},
        "properties": {"adminUserEnabled": True}
    }
    url = f"{cfg.AZURE_RESOURCE}{registry_id(subscription_id, resource_group, name)}?api-version={cfg.REGISTRY_API_VERSION}"
    return make_request("PUT", url, token, payload, step="create registry")


def get_registry(token: str, subscription_id: str, resource_group: str, name: str) -> Dict[str, Any]:
    url = f"{cfg.AZURE_RESOURCE}{registry_id(subscription_id, resource_group, name)}?api-version={cfg.REGISTRY_API_VERSION}"
    return make_request("GET", url, token, step="read registry")


def get_build_source_upload_url(token: str, registry_resource_id: str) -> Dict[str, Any]:
    """
    Get a writable blob location for a build context archive.

    Returns:
        Dict with "uploadUrl" (SAS URL) and "relativePath" (used as the run's sourceLocation)
    """
    url = f"{cfg.AZURE_RESOURCE}{registry_resource_id}/listBuildSourceUploadUrl?api-version={cfg.REGISTRY_BUILD_API_VERSION}"
    return make_request("POST", url, token, step="build image")


def upload_build_source(upload_url: str, archive: bytes) -> None:
    """Upload a build context archive to the SAS URL returned by the registry."""
    try:
        response = requests.put(upload_url, data=archive, headers={"x-ms-blob-type": "BlockBlob"})
    except requests.exceptions.RequestException as e:
        raise ProvisionError(f"Build context upload failed: {e}", step="build image") from e
    if not response.ok:
        raise provision_error_from_response(response, step="build image")


def schedule_run(token: str, registry_resource_id: str, run_request: Dict[str, Any]) -> Dict[str, Any]:
    url = f"{cfg.AZURE_RESOURCE}{registry_resource_id}/scheduleRun?api-version={cfg.REGISTRY_BUILD_API_VERSION}"
    return make_request("POST", url, token, run_request, step="build image")


def get_run(token: str, registry_resource_id: str, run_id: str) -> Dict[str, Any]:
    url = f"{cfg.AZURE_RESOURCE}{registry_resource_id}/runs/{run_id}?api-version={cfg.REGISTRY_BUILD_API_VERSION}"
    return make_request("GET", url, token, step="build image")


def get_run_log_url(token: str, registry_resource_id: str, run_id: str) -> Optional[str]:
    url = f"{cfg.AZURE_RESOURCE}{registry_resource_id}/runs/{run_id}/listLogSasUrl?api-version={cfg.REGISTRY_BUILD_API_VERSION}"
    return make_request("POST", url, token, step="build image").get("logLink")


# =============================================================================
# Template deployments
# =============================================================================


def create_deployment(token: str, subscription_id: str, resource_group: str, deployment_name: str, template_uri: str, parameters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Start an incremental resource group deployment of a linked template.

    Args:
        token: Azure access token
        subscription_id: Target subscription ID
        resource_group: Resource group to deploy into
        deployment_name: Deployment name
        template_uri: Public URI of the ARM template
        parameters: Plain template parameter values

    Returns:
        Deployment response (provisioning continues asynchronously)
    """
    payload = {
        "properties": {
            "mode": "Incremental",
            "templateLink": {"uri": template_uri},
            "parameters": {key: {"value": value} for key, value in (parameters or {}).items()}
        }
    }
    url = f"{cfg.AZURE_RESOURCE}{resource_group_scope(subscription_id, resource_group)}/providers/Microsoft.Resources/deployments/{deployment_name}?api-version={cfg.DEPLOYMENT_API_VERSION}"
    return make_request("PUT", url, token, payload, step="deploy template")


def get_deployment(token: str, subscription_id: str, resource_group: str, deployment_name: str) -> Dict[str, Any]:
    url = f"{cfg.AZURE_RESOURCE}{resource_group_scope(subscription_id, resource_group)}/providers/Microsoft.Resources/deployments/{deployment_name}?api-version={cfg.DEPLOYMENT_API_VERSION}"
    return make_request("GET", url, token, step="deploy template")


# =============================================================================
# Virtual machines
# =============================================================================


def enable_vm_system_identity(token: str, subscription_id: str, resource_group: str, vm_name: str) -> str:
    """
    Turn on the system-assigned managed identity of a virtual machine.

    User-assigned identities already attached to the VM are kept.

    Returns:
        The principal ID of the VM's system-assigned identity
    """
    url = f"{cfg.AZURE_RESOURCE}{resource_group_scope(subscription_id, resource_group)}/providers/Microsoft.Compute/virtualMachines/{vm_name}?api-version={cfg.COMPUTE_API_VERSION}"
    vm = make_request("GET", url, token, step="assign VM identity")

    identity_type = vm.get("identity", {}).get("type", "None")
    if "UserAssigned" in identity_type:
        identity_type = "SystemAssigned, UserAssigned"
    else:
        identity_type = "SystemAssigned"

    updated = make_request("PATCH", url, token, {"identity": {"type": identity_type}}, step="assign VM identity")
    principal_id = updated.get("identity", {}).get("principalId")
    if not principal_id:
        raise ProvisionError(f"VM {vm_name} did not report a system-assigned principal ID", step="assign VM identity")
    return principal_id
