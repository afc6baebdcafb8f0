"""
Command handling logic for the container lab provisioner.
This module contains the deploy pipeline and the opt-in teardown.
"""

import getpass
import json
import logging
import os
from typing import Any, Callable, Dict, List, Optional

from pydantic import SecretStr

import arm_api
import auth
import config as cfg
import graph_api
import identities
import injector
import jwt_utils
import password_policy
import providers
import registry
from artifacts import download_artifact
from configuration import LabConfiguration, domain_from_upn, parse_template_parameters, user_principal_name
from errors import FatalError, ProvisionError
from pipeline import Step, StepOutcome, StepPolicy, run_steps
from polling import poll_until

DEPLOYMENT_FAILED_STATES = ["Failed", "Canceled"]


class LabDeployment:
    """
    State of one deploy run.

    Identifiers are recorded as each step creates them so a partial run can
    still be written to the manifest and torn down.
    """

    def __init__(self, config: LabConfiguration, arm_token: str, graph_token: str, prompt_func: Callable[[str], str] = getpass.getpass):
        self.config = config
        self.arm_token = arm_token
        self.graph_token = graph_token
        self.prompt_func = prompt_func
        self.password: Optional[SecretStr] = None

        self.user_id = ""
        self.user_principal_name = ""
        self.user_role_assignment_id = ""
        # manifest entries by display name, filled in as each object is created
        self.service_principals: Dict[str, Dict[str, str]] = {}
        self.container_credentials: Optional[identities.CredentialBundle] = None
        self.registry: Optional[registry.RegistryHandle] = None
        self.image_run_id = ""
        self.vm_principal_id = ""
        self.vm_role_assignment_id = ""

    def steps(self) -> List[Step]:
        """The deploy pipeline, in order. Only the two role grants to the user and the VM are best effort."""
        return [
            Step("Validate lab user password", self.validate_password),
            Step("Resolve operator domain", self.resolve_domain),
            Step("Create lab user", self.create_user),
            Step("Assign lab user role", self.assign_user_role, StepPolicy.BEST_EFFORT),
            Step("Create resource group", self.create_resource_group),
            Step("Create service principals", self.create_service_principals),
            Step("Download build context", self.download_build_context),
            Step("Inject credentials", self.inject_credentials),
            Step("Register container registry provider", self.register_registry_provider),
            Step("Create container registry", self.create_registry),
            Step("Build image", self.build_image),
            Step("Grant application ownership", self.grant_application_ownership),
            Step("Deploy infrastructure template", self.deploy_template),
            Step("Assign VM identity role", self.assign_vm_identity, StepPolicy.BEST_EFFORT),
        ]

    # ===== Steps ===== #

    def validate_password(self):
        self.password = password_policy.prompt_for_password(self.prompt_func)

    def resolve_domain(self):
        me = graph_api.get_current_user(self.graph_token)
        self.config.domain = domain_from_upn(me["userPrincipalName"])
        self.config.tenant_id = jwt_utils.get_tenant_id(self.arm_token)
        logging.info(f"Operator {me['userPrincipalName']} in tenant {self.config.tenant_id}")

    def create_user(self):
        self.user_principal_name = user_principal_name(self.config.domain)
        self.user_id = identities.create_user(self.graph_token, cfg.LAB_USER_NAME, self.password, self.config.domain)
        self.password = None

    def assign_user_role(self):
        self.user_role_assignment_id = identities.assign_user_role(
            self.arm_token, self.config.subscription_id, self.user_id, cfg.LAB_USER_ROLE
        )

    def create_resource_group(self):
        logging.info(f"Creating resource group {self.config.resource_group} in {self.config.location}")
        arm_api.create_resource_group(self.arm_token, self.config.subscription_id, self.config.resource_group, self.config.location)

    def create_service_principals(self):
        self._create_service_principal(
            cfg.AUTOMATION_SP_NAME,
            cfg.AUTOMATION_SP_ROLE,
            arm_api.subscription_scope(self.config.subscription_id),
        )
        container_sp = self._create_service_principal(
            cfg.CONTAINER_SP_NAME,
            cfg.CONTAINER_SP_ROLE,
            arm_api.resource_group_scope(self.config.subscription_id, self.config.resource_group),
        )
        # only needed until the build context is injected
        self.container_credentials = container_sp.credentials

    def _create_service_principal(self, name: str, role: str, scope: str) -> identities.ServicePrincipal:
        sp = identities.create_service_principal(
            self.graph_token,
            self.arm_token,
            self.config.subscription_id,
            self.config.tenant_id,
            name,
            role,
            scope,
            on_created=lambda ids: self._record_service_principal(name, role, scope, **ids),
        )
        self._record_service_principal(
            name,
            role,
            scope,
            appId=sp.credentials.client_id,
            applicationObjectId=sp.application_object_id,
            servicePrincipalId=sp.service_principal_id,
            roleAssignmentId=sp.role_assignment_id,
        )
        return sp

    def _record_service_principal(self, name: str, role: str, scope: str, **ids: str) -> None:
        entry = self.service_principals.setdefault(name, {
            "displayName": name,
            "appId": "",
            "applicationObjectId": "",
            "servicePrincipalId": "",
            "role": role,
            "scope": scope,
            "roleAssignmentId": "",
        })
        entry.update(ids)

    def download_build_context(self):
        download_artifact(self.config.build_context_url, self.config.build_context_path, step="download build context")

    def inject_credentials(self):
        try:
            injector.inject_file(self.config.build_context_path, self.container_credentials)
        finally:
            self.container_credentials = None

    def register_registry_provider(self):
        providers.ensure_registered(self.arm_token, self.config.subscription_id, cfg.REGISTRY_PROVIDER_NAMESPACE)

    def create_registry(self):
        self.registry = registry.create_registry(
            self.arm_token,
            self.config.subscription_id,
            self.config.resource_group,
            self.config.registry_name,
            self.config.location,
        )

    def build_image(self):
        self.image_run_id = registry.build_image(self.arm_token, self.registry, self.config.build_context_dir, self.config.image_tag)

    def grant_application_ownership(self):
        identities.grant_application_ownership(self.graph_token, self.service_principals[cfg.AUTOMATION_SP_NAME]["applicationObjectId"], self.user_id)

    def deploy_template(self):
        logging.info(f"Deploying {self.config.template_uri} to {self.config.resource_group}")
        arm_api.create_deployment(
            self.arm_token,
            self.config.subscription_id,
            self.config.resource_group,
            cfg.DEPLOYMENT_NAME,
            self.config.template_uri,
            self.config.template_parameters,
        )

        def deployed() -> bool:
            deployment = arm_api.get_deployment(self.arm_token, self.config.subscription_id, self.config.resource_group, cfg.DEPLOYMENT_NAME)
            properties = deployment.get("properties", {})
            state = properties.get("provisioningState")
            logging.debug(f"Deployment {cfg.DEPLOYMENT_NAME} provisioning state: {state}")
            if state in DEPLOYMENT_FAILED_STATES:
                error = properties.get("error", {})
                raise ProvisionError(
                    f"Deployment {cfg.DEPLOYMENT_NAME} ended with state {state}: {error.get('code')} - {error.get('message')}",
                    step="deploy template",
                    code=error.get("code"),
                )
            return state == "Succeeded"

        poll_until(deployed, cfg.DEPLOYMENT_MAX_ATTEMPTS, cfg.DEPLOYMENT_POLL_INTERVAL, f"deployment {cfg.DEPLOYMENT_NAME}")
        logging.info(f"✅ Deployment {cfg.DEPLOYMENT_NAME} succeeded")

    def assign_vm_identity(self):
        self.vm_principal_id = arm_api.enable_vm_system_identity(
            self.arm_token, self.config.subscription_id, self.config.vm_resource_group, self.config.vm_name
        )
        assignment = identities.assign_role_when_replicated(
            self.arm_token,
            self.config.subscription_id,
            self.vm_principal_id,
            cfg.VM_IDENTITY_ROLE,
            "ServicePrincipal",
            arm_api.subscription_scope(self.config.subscription_id),
        )
        self.vm_role_assignment_id = assignment.get("id", "")
        logging.info(f"✅ VM {self.config.vm_name} identity {self.vm_principal_id} has {cfg.VM_IDENTITY_ROLE}")

    # ===== Output ===== #

    def manifest(self) -> Dict[str, Any]:
        """Identifiers of everything the run created. Contains no secret."""
        return {
            "subscriptionId": self.config.subscription_id,
            "tenantId": self.config.tenant_id,
            "resourceGroup": self.config.resource_group,
            "registryName": self.config.registry_name,
            "image": f"{self.registry.login_server}/{self.config.image_tag}" if self.registry else "",
            "user": {
                "id": self.user_id,
                "userPrincipalName": self.user_principal_name,
                "roleAssignmentId": self.user_role_assignment_id,
            },
            "servicePrincipals": [dict(entry) for entry in self.service_principals.values()],
            "vm": {
                "name": self.config.vm_name,
                "resourceGroup": self.config.vm_resource_group,
                "principalId": self.vm_principal_id,
                "roleAssignmentId": self.vm_role_assignment_id,
            },
        }

    def print_summary(self, outcomes: List[StepOutcome]) -> None:
        manifest = self.manifest()
        logging.info("\n================================================================================")
        logging.info("📊 SUMMARY")
        logging.info(f"👤 Lab user: {manifest['user']['userPrincipalName']} ({manifest['user']['id']})")
        for sp in manifest["servicePrincipals"]:
            logging.info(f"🤖 {sp['displayName']}: appId {sp['appId']} ({sp['role']} on {sp['scope']})")
        logging.info(f"📦 Resource group: {manifest['resourceGroup']}")
        logging.info(f"🐳 Registry: {manifest['registryName']}")
        if manifest["image"]:
            logging.info(f"🐳 Image: {manifest['image']}")
        for outcome in outcomes:
            if not outcome.succeeded:
                logging.info(f"⚠️  {outcome.name} did not complete: {outcome.error}")
        logging.info("⚠️  The identities above keep their role assignments until you run 'teardown'.")


def write_manifest(path: str, manifest: Dict[str, Any]) -> None:
    with open(path, "w", encoding="utf-8") as outfile:
        json.dump(manifest, outfile, indent=2)
    logging.info(f"Run manifest written to {path}")


def load_manifest(path: str) -> Dict[str, Any]:
    try:
        with open(path, "r", encoding="utf-8") as infile:
            return json.load(infile)
    except (FileNotFoundError, json.JSONDecodeError) as e:
        raise FatalError(f"Cannot read run manifest {path}: {e}", step="load manifest") from e


def build_configuration(args: Any) -> LabConfiguration:
    return LabConfiguration(
        subscription_id=args.subscription_id,
        template_uri=args.template_uri,
        build_context_url=args.build_context_url,
        location=args.location,
        resource_group=args.resource_group,
        vm_name=args.vm_name,
        vm_resource_group=args.vm_resource_group or "",
        template_parameters=parse_template_parameters(args.template_parameter),
        manifest_path=args.manifest,
    )


def handle_deploy_command(args: Any) -> int:
    """
    Handle the deploy command - provision the whole lab.

    Args:
        args: Command line arguments namespace

    Returns:
        Exit code (0 for success, 1 for error)
    """
    try:
        config = build_configuration(args)
        if os.path.exists(config.manifest_path):
            raise FatalError(
                f"Run manifest {config.manifest_path} already exists. Run 'teardown' first or pass a different --manifest",
                step="check manifest",
            )
        arm_token, graph_token = auth.get_session_tokens(args)
    except FatalError as e:
        logging.error(f"❌ {e}")
        return 1

    if getattr(args, 'verbose', False):
        jwt_utils.inspect_azure_token(arm_token, True)

    deployment = LabDeployment(config, arm_token, graph_token)
    try:
        outcomes = run_steps(deployment.steps())
    except FatalError as e:
        logging.error(f"❌ Lab deployment aborted: {e}")
        write_manifest(config.manifest_path, deployment.manifest())
        deployment.print_summary([])
        return 1

    write_manifest(config.manifest_path, deployment.manifest())
    deployment.print_summary(outcomes)
    return 0


def teardown_steps(manifest: Dict[str, Any], arm_token: str, graph_token: str) -> List[Step]:
    """Cleanup steps for a run manifest. Every step is best effort."""
    steps = []

    assignment_ids = [manifest.get("user", {}).get("roleAssignmentId"), manifest.get("vm", {}).get("roleAssignmentId")]
    assignment_ids += [sp.get("roleAssignmentId") for sp in manifest.get("servicePrincipals", [])]
    for assignment_id in filter(None, assignment_ids):
        steps.append(Step(f"Remove role assignment {assignment_id}", lambda a=assignment_id: arm_api.remove_role_assignment(arm_token, a), StepPolicy.BEST_EFFORT))

    for sp in manifest.get("servicePrincipals", []):
        if sp.get("applicationObjectId"):
            steps.append(Step(f"Delete application {sp['displayName']}", lambda o=sp["applicationObjectId"]: graph_api.delete_application(graph_token, o), StepPolicy.BEST_EFFORT))

    user_id = manifest.get("user", {}).get("id")
    if user_id:
        steps.append(Step(f"Delete user {manifest['user'].get('userPrincipalName')}", lambda: graph_api.delete_user(graph_token, user_id), StepPolicy.BEST_EFFORT))

    resource_group = manifest.get("resourceGroup")
    if resource_group:
        steps.append(Step(f"Delete resource group {resource_group}", lambda: arm_api.delete_resource_group(arm_token, manifest["subscriptionId"], resource_group), StepPolicy.BEST_EFFORT))

    return steps


def handle_teardown_command(args: Any) -> int:
    """
    Handle the teardown command - remove what a previous deploy created.

    Args:
        args: Command line arguments namespace

    Returns:
        Exit code (0 when every removal succeeded, 1 otherwise)
    """
    try:
        manifest = load_manifest(args.manifest)
    except FatalError as e:
        logging.error(f"❌ {e}")
        return 1

    if not args.yes:
        answer = input(f"Remove the lab in resource group {manifest.get('resourceGroup')} and its identities? [y/N] ")
        if answer.strip().lower() not in ("y", "yes"):
            logging.info("Teardown cancelled")
            return 1

    try:
        arm_token, graph_token = auth.get_session_tokens(args)
    except FatalError as e:
        logging.error(f"❌ {e}")
        return 1

    outcomes = run_steps(teardown_steps(manifest, arm_token, graph_token))
    failed = [outcome for outcome in outcomes if not outcome.succeeded]
    if failed:
        logging.error(f"❌ {len(failed)} teardown step(s) failed")
        return 1

    os.remove(args.manifest)
    logging.info("✅ Lab removed")
    return 0
