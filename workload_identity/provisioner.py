"""Idempotent provisioning of the Azure side of Terraform Cloud workload identity.

Each step checks for existing state before creating anything, so the tool
can be re-run against an already provisioned application.
"""
import json
import os
import tempfile
import time
from typing import Callable, List, Tuple

from pydantic import BaseModel

from workload_identity import az_cli
from workload_identity.az_cli import AzCliError
from workload_identity.config import Config, RoleAssignment
from workload_identity.subject import (
    CREDENTIAL_PREFIX,
    RUN_PHASES,
    TFC_ISSUER,
    WORKSPACE_WILDCARD,
    build_subject_claim,
    credential_name,
)

# Entra ID needs a moment before a new principal can take credentials
PROPAGATION_DELAY_SECONDS = 5


class ProvisioningError(Exception):
    """A provisioning step failed and the run was aborted."""


class AzureResources(BaseModel):
    application_id: str = ""
    subscription_id: str = ""
    tenant_id: str = ""
    subject: str = ""


def ensure_resource(lookup: Callable[[], str], create: Callable[[], str]) -> Tuple[str, bool]:
    """
    Return an existing resource or create it.

    Args:
        lookup: Returns the identifier of the existing resource, or "" when none exists.
        create: Creates the resource and returns its identifier.

    Returns:
        (identifier, created) where created is True if create() was called.

    Errors from either callable propagate; a failed lookup is never treated as "not found".
    """
    existing = lookup()
    if existing:
        return existing, False
    return create(), True


def resolve_workspaces(config: Config) -> List[str]:
    """Explicit workspace list, else the single workspace, else all workspaces."""
    tfc = config.terraform_cloud
    if tfc.workspaces:
        return list(tfc.workspaces)
    if tfc.workspace:
        return [tfc.workspace]
    return [WORKSPACE_WILDCARD]


def resolve_roles(config: Config) -> List[RoleAssignment]:
    """Explicit role list, else the single role and scope."""
    if config.azure.roles:
        return list(config.azure.roles)
    if config.azure.role:
        return [RoleAssignment(name=config.azure.role, scope=config.azure.scope)]
    return []


def _resolve_context(config: Config, resources: AzureResources):
    azure = config.azure

    if not azure.subscription_id:
        print("\n📋 Getting current subscription...")
        try:
            azure.subscription_id = az_cli.run_az("account", "show", "--query", "id", "-o", "tsv")
        except AzCliError as e:
            raise ProvisioningError(f"failed to get subscription: {e}") from e
        print(f"✅ Using subscription: {azure.subscription_id}")
    resources.subscription_id = azure.subscription_id

    if not azure.tenant_id:
        try:
            azure.tenant_id = az_cli.run_az("account", "show", "--query", "tenantId", "-o", "tsv")
        except AzCliError as e:
            raise ProvisioningError(f"failed to get tenant: {e}") from e
    resources.tenant_id = azure.tenant_id


def _print_summary(config: Config):
    tfc = config.terraform_cloud
    print("\n📝 Configuration:")
    print(f"  Organization: {tfc.organization}")
    if tfc.project:
        print(f"  Project:      {tfc.project}")
    if tfc.workspaces:
        print(f"  Workspaces:   {', '.join(tfc.workspaces)}")
    else:
        print(f"  Workspace:    {tfc.workspace}")
    print(f"  Subscription: {config.azure.subscription_id}")
    print(f"  Tenant:       {config.azure.tenant_id}")
    print(f"  App Name:     {config.application.name}")
    print()


def ensure_application(display_name: str) -> str:
    """Find the application by display name or create it. Returns its appId."""
    print("🔨 Checking for existing Azure AD Application...")
    try:
        app_id, created = ensure_resource(
            lambda: az_cli.run_az(
                "ad", "app", "list",
                "--display-name", display_name,
                "--query", "[0].appId", "-o", "tsv"
            ),
            lambda: az_cli.run_az(
                "ad", "app", "create",
                "--display-name", display_name,
                "--query", "appId", "-o", "tsv"
            ),
        )
    except AzCliError as e:
        raise ProvisioningError(f"failed to create application: {e}") from e

    if created:
        print(f"✅ Application created: {app_id}")
    else:
        print(f"✅ Found existing application: {app_id}")
    return app_id


def ensure_service_principal(app_id: str) -> str:
    """Find the service principal for the application or create it. Returns its object id."""
    print("\n🔨 Checking for existing Service Principal...")
    try:
        sp_id, created = ensure_resource(
            lambda: az_cli.run_az(
                "ad", "sp", "list",
                "--filter", f"appId eq '{app_id}'",
                "--query", "[0].id", "-o", "tsv"
            ),
            lambda: az_cli.run_az(
                "ad", "sp", "create",
                "--id", app_id,
                "--query", "id", "-o", "tsv"
            ),
        )
    except AzCliError as e:
        raise ProvisioningError(f"failed to create service principal: {e}") from e

    if created:
        print("✅ Service Principal created")
    else:
        print("✅ Service Principal already exists")
    return sp_id


def cleanup_credentials(app_id: str) -> List[str]:
    """
    Delete federated credentials left by earlier runs of this tool.

    Only credentials whose name starts with CREDENTIAL_PREFIX are touched.
    This is best effort: a failed listing skips the cleanup and failed
    deletions are ignored. Returns the names a deletion was attempted for.
    """
    print("\n🧹 Cleaning up old credentials...")
    try:
        existing = az_cli.run_az(
            "ad", "app", "federated-credential", "list",
            "--id", app_id,
            "--query", "[].name", "-o", "tsv"
        )
    except AzCliError:
        return []

    deleted = []
    for name in existing.splitlines():
        name = name.strip()
        if not name.startswith(CREDENTIAL_PREFIX):
            continue
        print(f"   Deleting: {name}")
        deleted.append(name)
        try:
            az_cli.run_az(
                "ad", "app", "federated-credential", "delete",
                "--id", app_id,
                "--federated-credential-id", name
            )
        except AzCliError:
            pass
    return deleted


def create_federated_credential(app_id: str, name: str, subject: str, audience: str, description: str):
    """Create one federated credential, passing the payload through a temp file."""
    credential_json = {
        "name": name,
        "issuer": TFC_ISSUER,
        "subject": subject,
        "audiences": [audience],
        "description": description
    }

    # Write to temp file to avoid shell escaping issues
    with tempfile.NamedTemporaryFile(mode='w', suffix='.json', prefix='federated-cred-', delete=False) as f:
        json.dump(credential_json, f)
        temp_file = f.name

    try:
        az_cli.run_az(
            "ad", "app", "federated-credential", "create",
            "--id", app_id,
            "--parameters", f"@{temp_file}"
        )
    finally:
        os.unlink(temp_file)


def create_federated_credentials(config: Config, app_id: str, workspaces: List[str]) -> str:
    """
    Create a plan and an apply credential for every workspace.

    Returns the subject of the first workspace's plan credential.
    """
    tfc = config.terraform_cloud
    first_subject = ""

    for index, workspace in enumerate(workspaces):
        print(f"\n🔨 Workspace: {workspace}")

        for run_phase in RUN_PHASES:
            subject = build_subject_claim(tfc.organization, tfc.project, workspace, run_phase)
            name = credential_name(run_phase, index, len(workspaces))
            print(f"   Subject ({run_phase}): {subject}")

            print(f"   📝 Creating {run_phase} credential...")
            try:
                create_federated_credential(
                    app_id,
                    name,
                    subject,
                    config.application.audience,
                    f"Federated credential for TFC workspace: {workspace} ({run_phase})"
                )
            except (AzCliError, OSError) as e:
                raise ProvisioningError(
                    f"failed to create federated credential for {workspace} ({run_phase}): {e}"
                ) from e
            print(f"   ✅ {run_phase} credential created")

            if not first_subject:
                first_subject = subject

    return first_subject


def assign_roles(app_id: str, roles: List[RoleAssignment], subscription_id: str) -> List[Tuple[str, str]]:
    """
    Assign each role to the application's principal unless already assigned.

    Failures only produce a warning: a fresh principal may not be visible to
    the authorization service yet, and a duplicate create can fail even
    though the assignment exists. Returns the (role, scope) pairs now in place.
    """
    print("\n🔨 Assigning roles...")
    assigned = []

    for role in roles:
        scope = role.scope or f"/subscriptions/{subscription_id}"
        try:
            _, created = ensure_resource(
                lambda: az_cli.run_az(
                    "role", "assignment", "list",
                    "--assignee", app_id,
                    "--role", role.name,
                    "--scope", scope,
                    "--query", "[0].id", "-o", "tsv"
                ),
                lambda: az_cli.run_az(
                    "role", "assignment", "create",
                    "--assignee", app_id,
                    "--role", role.name,
                    "--scope", scope,
                    "--query", "id", "-o", "tsv"
                ),
            )
        except AzCliError as e:
            print(f"⚠️  Warning: Could not assign role {role.name}: {e}")
            continue

        if created:
            print(f"✅ Assigned role: {role.name} (scope: {scope})")
        else:
            print(f"✅ Role already assigned: {role.name} (scope: {scope})")
        assigned.append((role.name, scope))

    return assigned


def setup_azure_workload_identity(config: Config) -> AzureResources:
    """
    Provision the application, service principal, federated credentials and
    role assignments described by a validated config.

    Raises ProvisioningError on any fatal step.
    """
    resources = AzureResources()

    print("\n🔍 Checking Azure CLI...")
    if not az_cli.check_azure_cli():
        raise ProvisioningError(f"Azure CLI not found. Please install from {az_cli.AZ_INSTALL_URL}")
    print("✅ Azure CLI found")

    _resolve_context(config, resources)
    _print_summary(config)

    resources.application_id = ensure_application(config.application.name)
    ensure_service_principal(resources.application_id)

    print(f"\n⏳ Waiting for propagation ({PROPAGATION_DELAY_SECONDS} seconds)...")
    time.sleep(PROPAGATION_DELAY_SECONDS)

    workspaces = resolve_workspaces(config)
    print(f"\n📋 Creating credentials for {len(workspaces)} workspace(s)...")
    print(f"   Creating {len(RUN_PHASES)} credentials per workspace (plan + apply)")

    cleanup_credentials(resources.application_id)
    resources.subject = create_federated_credentials(config, resources.application_id, workspaces)

    assign_roles(resources.application_id, resolve_roles(config), resources.subscription_id)

    return resources
