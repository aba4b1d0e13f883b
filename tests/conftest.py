#!/usr/bin/env python3
# CUI // SP-CTI
"""Shared pytest fixtures for the ArcOrg test suite.

FakeOrganizations stands in for the boto3 Organizations client: it keeps
accounts and parent placement in memory, records every call, and raises real
botocore ClientErrors so wrapping and error codes are exercised.
"""

import sys
from pathlib import Path

import pytest
from botocore.exceptions import ClientError

# Ensure project root is on sys.path
BASE_DIR = Path(__file__).resolve().parent.parent
if str(BASE_DIR) not in sys.path:
    sys.path.insert(0, str(BASE_DIR))

from arcorg.orgs.account_manager import AccountManager  # noqa: E402
from arcorg.orgs.creation_waiter import CreationWaiter  # noqa: E402
from arcorg.orgs.directory_client import AccountDirectoryClient  # noqa: E402
from arcorg.orgs.models import DesiredPlacement  # noqa: E402
from arcorg.orgs.reconciler import AccountReconciler  # noqa: E402
from arcorg.orgs.state_store import StateStore  # noqa: E402
from arcorg.orgs.unit_mover import UnitMover  # noqa: E402

ROOT_ID = "r-ab12"
ACTIVE_OU = "ou-ab12-active01"
CLOSED_OU = "ou-ab12-closed01"
OTHER_OU = "ou-ab12-other001"
EMAIL = "team-a@example.com"

MUTATING_CALLS = ("create_account", "move_account")


def client_error(code, operation, message=""):
    """Build a botocore ClientError the way the SDK raises it."""
    return ClientError(
        {"Error": {"Code": code, "Message": message or code}}, operation)


# ---------------------------------------------------------------------------
# Fake Organizations client
# ---------------------------------------------------------------------------
class FakePaginator:
    """Lazy NextToken paginator over one FakeOrganizations list operation."""

    def __init__(self, client, method):
        self._client = client
        self._method = method

    def paginate(self, **kwargs):
        token = None
        while True:
            params = dict(kwargs, NextToken=token) if token else dict(kwargs)
            page = getattr(self._client, self._method)(**params)
            yield page
            token = page.get("NextToken")
            if not token:
                return


class FakeOrganizations:
    """In-memory AWS Organizations with cursor pagination."""

    def __init__(self, page_size=2, root_id=ROOT_ID):
        self.page_size = page_size
        self.root_id = root_id
        self.accounts = []
        self.parents = {}
        self.calls = []
        self.failures = {}
        # Scripted DescribeCreateAccountStatus answers: a state string or an
        # exception. When empty, pending requests succeed.
        self.creation_script = []
        self._requests = {}
        self._next_account = 900000000001

    # -- test helpers --------------------------------------------------
    def add_account(self, account_id, email, name="acct", status="ACTIVE",
                    parents=(ACTIVE_OU,)):
        self.accounts.append({
            "Id": account_id,
            "Email": email,
            "Name": name,
            "Status": status,
            "Arn": "arn:aws:organizations::000000000000:account/o-x/" + account_id,
        })
        self.parents[account_id] = list(parents)

    def fail(self, method, error):
        self.failures[method] = error

    def call_names(self):
        return [name for name, _ in self.calls]

    def count(self, method):
        return self.call_names().count(method)

    def mutating_calls(self):
        return [c for c in self.calls if c[0] in MUTATING_CALLS]

    def _record(self, method, **kwargs):
        self.calls.append((method, kwargs))
        if method in self.failures:
            raise self.failures[method]

    # -- API -----------------------------------------------------------
    def get_paginator(self, method):
        return FakePaginator(self, method)

    def list_accounts(self, **kwargs):
        self._record("list_accounts", **kwargs)
        start = int(kwargs.get("NextToken") or 0)
        end = start + self.page_size
        response = {"Accounts": [dict(a) for a in self.accounts[start:end]]}
        if end < len(self.accounts):
            response["NextToken"] = str(end)
        return response

    def describe_account(self, AccountId):
        self._record("describe_account", AccountId=AccountId)
        for account in self.accounts:
            if account["Id"] == AccountId:
                return {"Account": dict(account)}
        raise client_error("AccountNotFoundException", "DescribeAccount")

    def list_parents(self, ChildId, NextToken=None):
        self._record("list_parents", ChildId=ChildId, NextToken=NextToken)
        if ChildId not in self.parents:
            raise client_error("ChildNotFoundException", "ListParents")
        return {"Parents": [
            {"Id": p, "Type": "ROOT" if p.startswith("r-") else "ORGANIZATIONAL_UNIT"}
            for p in self.parents[ChildId]]}

    def list_roots(self):
        self._record("list_roots")
        return {"Roots": [{"Id": self.root_id, "Name": "Root"}]}

    def create_account(self, AccountName, Email):
        self._record("create_account", AccountName=AccountName, Email=Email)
        request_id = "car-{}".format(len(self._requests) + 1)
        self._requests[request_id] = {"name": AccountName, "email": Email,
                                      "account_id": None}
        return {"CreateAccountStatus": {"Id": request_id, "State": "IN_PROGRESS",
                                        "AccountName": AccountName}}

    def describe_create_account_status(self, CreateAccountRequestId):
        self._record("describe_create_account_status",
                     CreateAccountRequestId=CreateAccountRequestId)
        request = self._requests.get(CreateAccountRequestId)
        if request is None:
            raise client_error("CreateAccountStatusNotFoundException",
                               "DescribeCreateAccountStatus")
        state = self.creation_script.pop(0) if self.creation_script else "SUCCEEDED"
        if isinstance(state, Exception):
            raise state
        status = {"Id": CreateAccountRequestId, "State": state}
        if state == "SUCCEEDED":
            if request["account_id"] is None:
                account_id = str(self._next_account)
                self._next_account += 1
                self.add_account(account_id, request["email"], request["name"],
                                 parents=(self.root_id,))
                request["account_id"] = account_id
            status["AccountId"] = request["account_id"]
        elif state == "FAILED":
            status["FailureReason"] = "EMAIL_ALREADY_EXISTS"
        return {"CreateAccountStatus": status}

    def move_account(self, AccountId, SourceParentId, DestinationParentId):
        self._record("move_account", AccountId=AccountId,
                     SourceParentId=SourceParentId,
                     DestinationParentId=DestinationParentId)
        if AccountId not in self.parents:
            raise client_error("AccountNotFoundException", "MoveAccount")
        if self.parents[AccountId] != [SourceParentId]:
            raise client_error("SourceParentNotFoundException", "MoveAccount")
        self.parents[AccountId] = [DestinationParentId]
        return {}


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def fake_orgs():
    return FakeOrganizations()


@pytest.fixture
def sleeps():
    """Records every waiter sleep instead of sleeping."""
    return []


@pytest.fixture
def directory(fake_orgs):
    return AccountDirectoryClient(fake_orgs)


@pytest.fixture
def reconciler(fake_orgs, directory, sleeps):
    waiter = CreationWaiter(directory, max_attempts=60, interval=10,
                            sleep=sleeps.append)
    return AccountReconciler(directory, UnitMover(fake_orgs), waiter)


@pytest.fixture
def desired():
    return DesiredPlacement(email=EMAIL, name="team-a",
                            active_unit_id=ACTIVE_OU, closed_unit_id=CLOSED_OU)


@pytest.fixture
def store(tmp_path):
    return StateStore(tmp_path / "arcorg.db")


@pytest.fixture
def manager(reconciler, store):
    return AccountManager(reconciler, store)
