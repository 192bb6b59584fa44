#!/usr/bin/env python3
"""
Set up Azure AD workload identity federation for Terraform Cloud.

This script:
1. Creates (or reuses) an Azure AD application and service principal
2. Creates federated credentials for the plan and apply phases of each workspace
3. Assigns Azure RBAC roles to the service principal
4. Prints the variables to configure in Terraform Cloud

Prerequisites:
- Azure CLI installed and authenticated: az login
- Permissions: Application Administrator in Entra ID, plus
  Owner or User Access Administrator on the role scopes

Usage:
    setup-azure-workload-identity --config config.yaml
    setup-azure-workload-identity --interactive --output env
"""
import argparse
import sys

from dotenv import load_dotenv

from workload_identity import __version__
from workload_identity.config import (
    DEFAULT_CONFIG_PATH,
    ConfigError,
    apply_environment_defaults,
    interactive_setup,
    load_config,
    validate_config,
)
from workload_identity.output import OUTPUT_FORMATS, output_results
from workload_identity.provisioner import ProvisioningError, setup_azure_workload_identity


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Set up Azure workload identity federation for Terraform Cloud"
    )
    parser.add_argument(
        "--config",
        default=DEFAULT_CONFIG_PATH,
        help="Path to configuration file (YAML or JSON)"
    )
    parser.add_argument(
        "--interactive",
        action="store_true",
        help="Run in interactive mode"
    )
    parser.add_argument(
        "--output",
        choices=OUTPUT_FORMATS,
        default="text",
        help="Output format: text, json, env"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"Azure Workload Identity Setup v{__version__}"
    )
    return parser


def main(argv=None) -> int:
    # Emoji output on the Windows console
    if sys.platform == 'win32':
        sys.stdout.reconfigure(encoding='utf-8', errors='replace')
        sys.stderr.reconfigure(encoding='utf-8', errors='replace')

    args = build_parser().parse_args(argv)
    load_dotenv()

    if args.interactive:
        try:
            config = interactive_setup()
        except (EOFError, KeyboardInterrupt) as e:
            print(f"❌ Error in interactive setup: {e!r}", file=sys.stderr)
            return 1
    else:
        try:
            config = load_config(args.config)
        except ConfigError as e:
            print(f"❌ Error loading config: {e}", file=sys.stderr)
            return 1

    try:
        validate_config(apply_environment_defaults(config))
    except ConfigError as e:
        print(f"❌ Invalid configuration: {e}", file=sys.stderr)
        return 1

    try:
        resources = setup_azure_workload_identity(config)
    except ProvisioningError as e:
        print(f"❌ Error setting up Azure workload identity: {e}", file=sys.stderr)
        return 1

    output_results(resources, args.output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
