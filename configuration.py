"""
Run configuration and the resource identifiers derived from it.
"""

import os
import random
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import config as cfg
from errors import FatalError


def generate_registry_name(rng: random.Random = random) -> str:
    """Registry names are "acr" followed by five digits, e.g. acr48213."""
    return f"{cfg.REGISTRY_NAME_PREFIX}{rng.randint(cfg.REGISTRY_SUFFIX_MIN, cfg.REGISTRY_SUFFIX_MAX)}"


def user_principal_name(domain: str, name: str = cfg.LAB_USER_NAME) -> str:
    return f"{name}@{domain}"


def domain_from_upn(upn: str) -> str:
    """Return the domain part of a user principal name."""
    local, sep, domain = upn.rpartition("@")
    if not sep or not local or not domain:
        raise FatalError(f"Cannot read a domain from principal name '{upn}'", step="resolve operator domain")
    return domain


def parse_template_parameters(pairs: Optional[List[str]]) -> Dict[str, str]:
    """Parse KEY=VALUE strings given on the command line."""
    parameters = {}
    for pair in pairs or []:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise FatalError(f"Template parameter '{pair}' is not in KEY=VALUE form", step="parse arguments")
        parameters[key.strip()] = value
    return parameters


@dataclass
class LabConfiguration:
    """User-specified configuration parameters and their derivations"""

    # Required params
    subscription_id: str
    template_uri: str
    build_context_url: str

    # Optional params with defaults
    location: str = cfg.DEFAULT_LOCATION
    resource_group: str = cfg.DEFAULT_RESOURCE_GROUP
    vm_name: str = cfg.DEFAULT_VM_NAME
    vm_resource_group: str = ""
    template_parameters: Dict[str, str] = field(default_factory=dict)
    manifest_path: str = cfg.MANIFEST_FILE
    work_dir: str = "."

    def __post_init__(self):
        """Calculates derived values from user-specified params."""
        self.vm_resource_group = self.vm_resource_group or self.resource_group
        self.registry_name = generate_registry_name()
        self.image_tag = f"{cfg.IMAGE_REPOSITORY}:{cfg.IMAGE_TAG}"
        self.build_context_dir = os.path.join(self.work_dir, cfg.BUILD_CONTEXT_DIR)
        self.build_context_path = os.path.join(self.build_context_dir, cfg.BUILD_CONTEXT_FILE)

        # Filled in once the operator is signed in
        self.domain = ""
        self.tenant_id = ""
