"""Render provisioning results for the user."""
from workload_identity.provisioner import AzureResources

OUTPUT_FORMATS = ("text", "json", "env")


def format_env(resources: AzureResources) -> str:
    return "\n".join([
        "TFC_AZURE_PROVIDER_AUTH=true",
        f"TFC_AZURE_RUN_CLIENT_ID={resources.application_id}",
        f"ARM_SUBSCRIPTION_ID={resources.subscription_id}",
        f"ARM_TENANT_ID={resources.tenant_id}",
    ])


def format_json(resources: AzureResources) -> str:
    return resources.model_dump_json(indent=2)


def format_text(resources: AzureResources) -> str:
    """Workspace variables plus the provider block Terraform Cloud runs need."""
    return "\n".join([
        "Add these variables to your Terraform Cloud workspace:",
        "",
        "Environment Variables:",
        "  TFC_AZURE_PROVIDER_AUTH = true",
        f"  TFC_AZURE_RUN_CLIENT_ID = {resources.application_id}",
        f"  ARM_SUBSCRIPTION_ID     = {resources.subscription_id}",
        f"  ARM_TENANT_ID           = {resources.tenant_id}",
        "",
        "These should be marked as 'Environment Variables' (not Terraform variables)",
        "",
        "Your Terraform provider configuration should include:",
        '  provider "azurerm" {',
        "    features {}",
        "    use_oidc = true",
        "  }",
    ])


def output_results(resources: AzureResources, output_format: str = "text"):
    print()
    print("=" * 54)
    print("✅ Setup Complete!")
    print("=" * 54)
    print()

    if output_format == "json":
        print(format_json(resources))
    elif output_format == "env":
        print("# Environment Variables for Terraform Cloud")
        print(format_env(resources))
    else:
        print(format_text(resources))

    print()
    print("=" * 54)
