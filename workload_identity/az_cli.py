"""Thin wrapper around the Azure CLI.

Every read and write goes through ``az`` so the tool runs with whatever
identity ``az login`` established.
"""
import shutil
import subprocess
from typing import List


AZ_INSTALL_URL = "https://aka.ms/azure-cli"


class AzCliError(Exception):
    """An ``az`` invocation failed."""

    def __init__(self, cmd: List[str], returncode: int, output: str):
        self.cmd = cmd
        self.returncode = returncode
        self.output = output
        super().__init__(f"command failed: {' '.join(cmd)} (exit code {returncode})\nOutput: {output}")


def _az_executable() -> str:
    # On Windows the CLI ships as az.cmd, which subprocess won't find without shell=True
    return shutil.which("az") or "az"


def run_az(*args: str) -> str:
    """
    Run an Azure CLI command and return its stripped stdout.

    Raises AzCliError on a non-zero exit, with stdout and stderr folded into
    the message.
    """
    cmd = ["az", *args]
    try:
        result = subprocess.run(
            [_az_executable(), *args],
            capture_output=True,
            text=True,
            encoding='utf-8',
            errors='replace'
        )
    except FileNotFoundError as e:
        raise AzCliError(cmd, 127, str(e)) from e

    if result.returncode != 0:
        output = "\n".join(part.strip() for part in (result.stdout, result.stderr) if part and part.strip())
        raise AzCliError(cmd, result.returncode, output)

    return result.stdout.strip()


def check_azure_cli() -> bool:
    """Return True if the Azure CLI is installed and runs."""
    try:
        subprocess.run(
            [_az_executable(), "--version"],
            capture_output=True,
            check=True
        )
    except (subprocess.CalledProcessError, FileNotFoundError):
        return False
    return True
