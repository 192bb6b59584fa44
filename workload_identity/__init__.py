"""Azure AD workload identity federation setup for Terraform Cloud."""

__version__ = "1.0.0"
