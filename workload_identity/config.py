"""Configuration loading, validation and interactive collection."""
import json
import os
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, ValidationInfo, field_validator

from workload_identity.subject import WORKSPACE_WILDCARD

DEFAULT_AUDIENCE = "api://AzureADTokenExchange"
DEFAULT_ROLE = "Contributor"
DEFAULT_CONFIG_PATH = "config.yaml"


class ConfigError(Exception):
    """The configuration could not be read or is invalid."""


class _Section(BaseModel):
    # YAML turns `organization: 1234` into an int
    model_config = ConfigDict(coerce_numbers_to_str=True)

    @field_validator("*", mode="before")
    @classmethod
    def _blank_to_default(cls, value, info: ValidationInfo):
        """A key left blank in YAML (`project:`) loads as None; treat it as unset."""
        if value is None:
            field = cls.model_fields[info.field_name]
            if not field.is_required():
                return field.get_default(call_default_factory=True)
        return value


class TerraformCloudConfig(_Section):
    organization: str = ""
    workspace: str = ""
    workspaces: List[str] = Field(default_factory=list)
    project: str = ""


class RoleAssignment(_Section):
    name: str
    scope: str = ""


class AzureConfig(_Section):
    subscription_id: str = ""
    tenant_id: str = ""
    role: str = ""
    scope: str = ""
    roles: List[RoleAssignment] = Field(default_factory=list)


class ApplicationConfig(_Section):
    name: str = ""
    audience: str = ""


class Config(_Section):
    terraform_cloud: TerraformCloudConfig = Field(default_factory=TerraformCloudConfig)
    azure: AzureConfig = Field(default_factory=AzureConfig)
    application: ApplicationConfig = Field(default_factory=ApplicationConfig)


def default_application_name(organization: str) -> str:
    return f"terraform-cloud-{organization}"


def _parse(text: str) -> dict:
    """Parse YAML, falling back to JSON."""
    try:
        data = yaml.safe_load(text)
        if data is None:
            return {}
        if isinstance(data, dict):
            return data
    except yaml.YAMLError:
        pass

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ConfigError(f"failed to parse config (tried YAML and JSON): {e}") from e

    if not isinstance(data, dict):
        raise ConfigError("failed to parse config (tried YAML and JSON): top level must be a mapping")
    return data


def load_config(path: str) -> Config:
    """Read a YAML or JSON config file into a Config."""
    try:
        text = Path(path).read_text(encoding='utf-8')
    except OSError as e:
        raise ConfigError(f"failed to read config file: {e}") from e

    data = _parse(text)

    try:
        return Config.model_validate(data)
    except ValidationError as e:
        raise ConfigError(f"invalid config structure: {e}") from e


def apply_environment_defaults(config: Config) -> Config:
    """Fill subscription and tenant from AZURE_SUBSCRIPTION_ID / AZURE_TENANT_ID when unset."""
    if not config.azure.subscription_id:
        config.azure.subscription_id = os.getenv("AZURE_SUBSCRIPTION_ID", "")
    if not config.azure.tenant_id:
        config.azure.tenant_id = os.getenv("AZURE_TENANT_ID", "")
    return config


def validate_config(config: Config) -> Config:
    """
    Check required fields and fill in defaults.

    The config is updated in place and returned.
    """
    tfc = config.terraform_cloud

    if not tfc.organization:
        raise ConfigError("terraform_cloud.organization is required")

    if not tfc.workspace:
        tfc.workspace = WORKSPACE_WILDCARD

    # "" and "*" produce the same subject claim
    tfc.workspaces = [workspace or WORKSPACE_WILDCARD for workspace in tfc.workspaces]

    seen = set()
    for workspace in tfc.workspaces:
        if workspace in seen:
            raise ConfigError(f"terraform_cloud.workspaces lists '{workspace}' more than once")
        seen.add(workspace)

    if not config.application.audience:
        config.application.audience = DEFAULT_AUDIENCE

    if not config.application.name:
        config.application.name = default_application_name(tfc.organization)

    if not config.azure.role and not config.azure.roles:
        config.azure.role = DEFAULT_ROLE

    for role in config.azure.roles:
        if not role.name:
            raise ConfigError("azure.roles entries require a name")

    return config


def get_input(prompt: str, required: bool = True, default: Optional[str] = None) -> str:
    """Get user input with validation."""
    while True:
        value = input(prompt).strip()
        if value:
            return value
        if default is not None:
            return default
        if not required:
            return value
        print("❌ This field is required")


def interactive_setup() -> Config:
    """Collect the configuration from prompts instead of a file."""
    print("=" * 52)
    print("Azure Workload Identity Federation Setup")
    print("for Terraform Cloud")
    print("=" * 52)
    print()

    organization = get_input("Enter your Terraform Cloud Organization name: ")
    workspace = get_input(
        "Enter your Terraform Cloud Workspace name (default: * for all): ",
        default=WORKSPACE_WILDCARD
    )
    subscription_id = get_input("Enter Azure Subscription ID (leave empty for current): ", required=False)
    app_name = get_input(
        "Enter Application name (leave empty for default): ",
        default=default_application_name(organization)
    )

    return Config(
        terraform_cloud=TerraformCloudConfig(organization=organization, workspace=workspace),
        azure=AzureConfig(subscription_id=subscription_id, role=DEFAULT_ROLE),
        application=ApplicationConfig(name=app_name, audience=DEFAULT_AUDIENCE),
    )
