"""
Configuration constants for the container lab provisioner.
"""

# Azure API endpoints
AZURE_RESOURCE = "https://management.azure.com"
GRAPH_RESOURCE = "https://graph.microsoft.com/"

# Application IDs
AZURE_CLI_APP_ID = "04b07795-8ddb-461a-bbee-02f9e1bf7b46"


# API Versions
RESOURCE_GROUP_API_VERSION = "2021-04-01"
PROVIDER_API_VERSION = "2021-04-01"
ROLE_ASSIGNMENTS_API_VERSION = "2022-04-01"
REGISTRY_API_VERSION = "2023-07-01"
REGISTRY_BUILD_API_VERSION = "2019-06-01-preview"
DEPLOYMENT_API_VERSION = "2022-09-01"
COMPUTE_API_VERSION = "2023-07-01"
GRAPH_API_VERSION = "v1.0"

# RBAC roles
OWNER_ROLE_ID = "8e3af657-a8ff-443c-a75c-2fe8c4bcb635"
CONTRIBUTOR_ROLE_ID = "b24988ac-6180-42a0-ab88-20f7382dd24c"
READER_ROLE_ID = "acdd72a7-3385-48ef-bd42-f606fba81ae7"
ACR_PUSH_ROLE_ID = "8311e382-0749-4cb8-b61a-304f252e45ec"

ROLE_IDS = {
    "Owner": OWNER_ROLE_ID,
    "Contributor": CONTRIBUTOR_ROLE_ID,
    "Reader": READER_ROLE_ID,
    "AcrPush": ACR_PUSH_ROLE_ID,
}

# Lab identities
LAB_USER_NAME = "readeruser"
LAB_USER_ROLE = "Reader"
AUTOMATION_SP_NAME = "automation-sp"
AUTOMATION_SP_ROLE = "Contributor"
CONTAINER_SP_NAME = "containerbuild-sp"
CONTAINER_SP_ROLE = "AcrPush"
VM_IDENTITY_ROLE = "Contributor"

# Lab resources
DEFAULT_LOCATION = "eastus"
DEFAULT_RESOURCE_GROUP = "containerlab-rg"
DEFAULT_VM_NAME = "labvm"
REGISTRY_PROVIDER_NAMESPACE = "Microsoft.ContainerRegistry"
REGISTRY_NAME_PREFIX = "acr"
REGISTRY_SUFFIX_MIN = 10000
REGISTRY_SUFFIX_MAX = 99999
IMAGE_REPOSITORY = "labapp"
IMAGE_TAG = "latest"
DEPLOYMENT_NAME = "containerlab-deployment"

# Remote artifacts
BUILD_CONTEXT_DIR = "build-context"
BUILD_CONTEXT_FILE = "Dockerfile"

# Placeholders substituted into the build context file
CLIENT_ID_PLACEHOLDER = "$containerappid"
CLIENT_SECRET_PLACEHOLDER = "$containerappsecret"
TENANT_ID_PLACEHOLDER = "$tenantid"

# Polling
PROVIDER_MAX_ATTEMPTS = 20
PROVIDER_POLL_INTERVAL = 10  # seconds
REGISTRY_MAX_ATTEMPTS = 30
REGISTRY_POLL_INTERVAL = 5  # seconds
ROLE_ASSIGNMENT_MAX_ATTEMPTS = 12
ROLE_ASSIGNMENT_POLL_INTERVAL = 10  # seconds
BUILD_MAX_ATTEMPTS = 180
BUILD_POLL_INTERVAL = 10  # seconds
DEPLOYMENT_MAX_ATTEMPTS = 120
DEPLOYMENT_POLL_INTERVAL = 15  # seconds

# Output
MANIFEST_FILE = "lab_manifest.json"
TOKEN_CACHE_FILE = ".roadtools_auth"
