"""
Container registry creation and remote image builds.
"""

import io
import logging
import os
import tarfile
from dataclasses import dataclass
from typing import Dict, Any

import requests

import arm_api
import config as cfg
from errors import BuildError, ProvisionError
from polling import poll_until

RUN_SUCCEEDED = "Succeeded"
RUN_FAILED_STATES = ["Failed", "Canceled", "Error", "Timeout"]
PROVISIONING_FAILED_STATES = ["Failed", "Canceled"]
BUILD_LOG_TAIL_LINES = 40


@dataclass(frozen=True)
class RegistryHandle:
    name: str
    resource_id: str
    login_server: str


def create_registry(
    token: str,
    subscription_id: str,
    resource_group: str,
    name: str,
    location: str,
    max_attempts: int = cfg.REGISTRY_MAX_ATTEMPTS,
    poll_interval: float = cfg.REGISTRY_POLL_INTERVAL,
) -> RegistryHandle:
    """
    Create a container registry and wait until it is provisioned.

    Raises:
        ProvisionError: If creation is rejected or provisioning ends in a failed state
        TimeoutError: If the registry is not ready after max_attempts polls
    """
    logging.info(f"Creating container registry {name} in {location}")
    arm_api.create_registry(token, subscription_id, resource_group, name, location)

    registry: Dict[str, Any] = {}

    def provisioned() -> bool:
        registry.update(arm_api.get_registry(token, subscription_id, resource_group, name))
        state = registry.get("properties", {}).get("provisioningState")
        logging.debug(f"Registry {name} provisioning state: {state}")
        if state in PROVISIONING_FAILED_STATES:
            raise ProvisionError(f"Registry {name} provisioning ended with state {state}", step="create registry")
        return state == "Succeeded"

    poll_until(provisioned, max_attempts, poll_interval, f"registry {name} to be ready")

    handle = RegistryHandle(
        name=name,
        resource_id=registry.get("id") or arm_api.registry_id(subscription_id, resource_group, name),
        login_server=registry.get("properties", {}).get("loginServer", f"{name}.azurecr.io"),
    )
    logging.info(f"✅ Registry {handle.login_server} is ready")
    return handle


def pack_build_context(context_dir: str) -> bytes:
    """Archive a build context directory as tar.gz, with paths relative to the directory."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        for entry in sorted(os.listdir(context_dir)):
            archive.add(os.path.join(context_dir, entry), arcname=entry)
    return buffer.getvalue()


def _build_log_tail(token: str, registry: RegistryHandle, run_id: str) -> str:
    try:
        log_url = arm_api.get_run_log_url(token, registry.resource_id, run_id)
        if not log_url:
            return "(no build log available)"
        response = requests.get(log_url, timeout=60)
        response.raise_for_status()
    except (ProvisionError, requests.exceptions.RequestException) as e:
        return f"(build log unavailable: {e})"
    return "\n".join(response.text.splitlines()[-BUILD_LOG_TAIL_LINES:])


def build_image(
    token: str,
    registry: RegistryHandle,
    context_dir: str,
    tag: str,
    dockerfile: str = cfg.BUILD_CONTEXT_FILE,
    max_attempts: int = cfg.BUILD_MAX_ATTEMPTS,
    poll_interval: float = cfg.BUILD_POLL_INTERVAL,
) -> str:
    """
    Build an image from a local context with the registry's remote build service.

    The context is uploaded, a Docker build run is scheduled and this call
    blocks until the run reaches a terminal status. Failed runs are not retried.

    Args:
        token: Azure access token
        registry: Registry that runs the build and stores the image
        context_dir: Local build context directory
        tag: Image name and tag, e.g. "labapp:latest"
        dockerfile: Dockerfile path inside the context

    Returns:
        The run ID of the successful build

    Raises:
        BuildError: If the run ends in a failed state
    """
    logging.info(f"Uploading build context {context_dir} to {registry.name}")
    upload = arm_api.get_build_source_upload_url(token, registry.resource_id)
    arm_api.upload_build_source(upload["uploadUrl"], pack_build_context(context_dir))

    run_request = {
        "type": "DockerBuildRequest",
        "imageNames": [tag],
        "isPushEnabled": True,
        "sourceLocation": upload["relativePath"],
        "dockerFilePath": dockerfile,
        "platform": {"os": "Linux", "architecture": "amd64"},
    }
    run = arm_api.schedule_run(token, registry.resource_id, run_request)
    run_id = run.get("properties", {}).get("runId") or run.get("name")
    logging.info(f"Build run {run_id} queued for {registry.login_server}/{tag}")

    status: Dict[str, Any] = {}

    def finished() -> bool:
        status.update(arm_api.get_run(token, registry.resource_id, run_id).get("properties", {}))
        logging.debug(f"Build run {run_id} status: {status.get('status')}")
        return status.get("status") == RUN_SUCCEEDED or status.get("status") in RUN_FAILED_STATES

    poll_until(finished, max_attempts, poll_interval, f"build run {run_id}")

    if status.get("status") != RUN_SUCCEEDED:
        error_message = status.get("errorMessage") or "no error message reported"
        raise BuildError(
            f"Build run {run_id} ended with status {status.get('status')}: {error_message}\n"
            f"{_build_log_tail(token, registry, run_id)}",
            step="build image",
        )

    logging.info(f"✅ Built {registry.login_server}/{tag}")
    return run_id
