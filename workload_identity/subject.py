"""Terraform Cloud subject claims and federated credential names.

Terraform Cloud presents its run identity in the ``sub`` claim of the OIDC
token, for example::

    organization:acme:project:infrastructure:workspace:prod:run_phase:apply

Azure only exchanges the token when a federated credential on the
application carries exactly the same subject string.
"""

WORKSPACE_WILDCARD = "*"

# Terraform Cloud issues a separate token for each phase of a run
RUN_PHASES = ("plan", "apply")

TFC_ISSUER = "https://app.terraform.io"

CREDENTIAL_PREFIX = "terraform-cloud-federated-credential"


def build_subject_claim(organization: str, project: str, workspace: str, run_phase: str) -> str:
    """
    Build the subject claim Terraform Cloud sends for a workspace run phase.

    An empty workspace (or ``*``) matches every workspace. Names are inserted
    verbatim; a colon inside any of them produces a claim that never matches.
    """
    if not workspace or workspace == WORKSPACE_WILDCARD:
        workspace = WORKSPACE_WILDCARD

    if project:
        return f"organization:{organization}:project:{project}:workspace:{workspace}:run_phase:{run_phase}"

    return f"organization:{organization}:workspace:{workspace}:run_phase:{run_phase}"


def credential_name(run_phase: str, index: int, total: int) -> str:
    """Name of the federated credential for the workspace at ``index``."""
    if total == 1:
        return f"{CREDENTIAL_PREFIX}-{run_phase}"
    return f"{CREDENTIAL_PREFIX}-{run_phase}-{index}"
