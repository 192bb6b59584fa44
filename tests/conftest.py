import json

import pytest

from workload_identity import az_cli, provisioner
from workload_identity.az_cli import AzCliError

SUBSCRIPTION_ID = "00000000-0000-0000-0000-000000000001"
TENANT_ID = "00000000-0000-0000-0000-0000000000aa"


def _opt(args, flag):
    return args[args.index(flag) + 1]


class FakeAz:
    """In-memory stand-in for the subset of `az` the provisioner uses."""

    def __init__(self):
        self.calls = []
        self.apps = {}            # display name -> appId
        self.principals = {}      # appId -> object id
        self.credentials = {}     # appId -> {name: payload}
        self.assignments = set()  # (appId, role, scope)
        self.failures = {}        # command prefix -> error output
        self.parameter_files = []
        self.subscription_id = SUBSCRIPTION_ID
        self.tenant_id = TENANT_ID

    def fail(self, *prefix, output="boom"):
        self.failures[prefix] = output

    def calls_to(self, *prefix):
        return [c for c in self.calls if c[:len(prefix)] == prefix]

    def __call__(self, *args):
        self.calls.append(args)
        if "--parameters" in args:
            self.parameter_files.append(_opt(args, "--parameters")[1:])
        for prefix, output in self.failures.items():
            if args[:len(prefix)] == prefix:
                raise AzCliError(["az", *args], 1, output)

        if args[:2] == ("account", "show"):
            return SUBSCRIPTION_ID if _opt(args, "--query") == "id" else TENANT_ID

        if args[:3] == ("ad", "app", "list"):
            return self.apps.get(_opt(args, "--display-name"), "")
        if args[:3] == ("ad", "app", "create"):
            app_id = f"app-{len(self.apps) + 1}"
            self.apps[_opt(args, "--display-name")] = app_id
            return app_id

        if args[:3] == ("ad", "sp", "list"):
            app_id = _opt(args, "--filter").split("'")[1]
            return self.principals.get(app_id, "")
        if args[:3] == ("ad", "sp", "create"):
            app_id = _opt(args, "--id")
            self.principals[app_id] = f"sp-{app_id}"
            return self.principals[app_id]

        if args[:4] == ("ad", "app", "federated-credential", "list"):
            return "\n".join(self.credentials.get(_opt(args, "--id"), {}))
        if args[:4] == ("ad", "app", "federated-credential", "delete"):
            self.credentials.get(_opt(args, "--id"), {}).pop(_opt(args, "--federated-credential-id"), None)
            return ""
        if args[:4] == ("ad", "app", "federated-credential", "create"):
            with open(_opt(args, "--parameters")[1:]) as f:
                payload = json.load(f)
            creds = self.credentials.setdefault(_opt(args, "--id"), {})
            if payload["name"] in creds:
                raise AzCliError(["az", *args], 1, "FederatedIdentityCredential with name already exists")
            if any((c.get("issuer"), c.get("subject")) == (payload["issuer"], payload["subject"]) for c in creds.values()):
                raise AzCliError(["az", *args], 1, "FederatedIdentityCredential with issuer and subject already exists")
            creds[payload["name"]] = payload
            return ""

        if args[:3] == ("role", "assignment", "list"):
            key = (_opt(args, "--assignee"), _opt(args, "--role"), _opt(args, "--scope"))
            return "assignment-id" if key in self.assignments else ""
        if args[:3] == ("role", "assignment", "create"):
            self.assignments.add((_opt(args, "--assignee"), _opt(args, "--role"), _opt(args, "--scope")))
            return "assignment-id"

        raise AssertionError(f"unexpected az call: {args}")


@pytest.fixture
def fake_az(monkeypatch):
    fake = FakeAz()
    monkeypatch.setattr(az_cli, "run_az", fake)
    monkeypatch.setattr(az_cli, "check_azure_cli", lambda: True)
    monkeypatch.setattr(provisioner.time, "sleep", lambda seconds: None)
    return fake


@pytest.fixture(autouse=True)
def _clean_azure_env(monkeypatch):
    monkeypatch.delenv("AZURE_SUBSCRIPTION_ID", raising=False)
    monkeypatch.delenv("AZURE_TENANT_ID", raising=False)
