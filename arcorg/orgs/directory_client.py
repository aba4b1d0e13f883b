#!/usr/bin/env python3
# CUI // SP-CTI
"""Account Directory Client - AWS Organizations account lookup and creation.

Stateless wrapper over an injected boto3 ``organizations`` client (D1). Every
call goes to the directory; nothing is cached between operations. botocore
failures are wrapped in DirectoryError and never retried here. Enumeration
goes through boto3 paginators (list_accounts, list_parents).

Usage:
    import boto3
    from arcorg.orgs.directory_client import AccountDirectoryClient

    directory = AccountDirectoryClient(boto3.client("organizations"))
    account = directory.find_by_email("team-a@example.com")
"""

import logging
from typing import Iterator, List, Optional

from botocore.exceptions import BotoCoreError, ClientError

from arcorg.orgs.models import Account, CreationStatus, CreationTicket
from arcorg.resilience.errors import DirectoryError

logger = logging.getLogger("arcorg.orgs.directory")


def _wrap(exc, operation: str) -> DirectoryError:
    """Convert a botocore exception into a DirectoryError."""
    if isinstance(exc, ClientError):
        code = exc.response.get("Error", {}).get("Code", "")
        return DirectoryError(
            "{} failed: {}".format(operation, exc), operation=operation,
            error_code=code)
    return DirectoryError("{} failed: {}".format(operation, exc),
                          operation=operation)


class AccountDirectoryClient:
    """Account lookup, creation and status against AWS Organizations."""

    def __init__(self, org_client):
        self._client = org_client

    @property
    def client(self):
        return self._client

    # ------------------------------------------------------------------
    # Enumeration
    # ------------------------------------------------------------------
    def _pages(self, method: str, operation: str, **kwargs) -> Iterator[dict]:
        """Iterate a boto3 paginator, wrapping page failures in DirectoryError.

        boto3 paginators fetch lazily, so a consumer that stops early never
        requests the next page.
        """
        pages = iter(self._client.get_paginator(method).paginate(**kwargs))
        page_number = 0
        while True:
            try:
                page = next(pages)
            except StopIteration:
                return
            except (ClientError, BotoCoreError) as exc:
                raise _wrap(exc, operation) from exc
            page_number += 1
            logger.debug("%s page %d", operation, page_number)
            yield page

    def iter_accounts(self) -> Iterator[Account]:
        """Yield every account in the organization, page by page."""
        for page in self._pages("list_accounts", "ListAccounts"):
            for data in page.get("Accounts", []):
                yield Account.from_api(data)

    def find_by_email(self, email: str) -> Optional[Account]:
        """Return the first account whose email matches exactly, else None."""
        for account in self.iter_accounts():
            if account.email == email:
                logger.debug("Found account %s for %s",
                             account.provider_account_id, email)
                return account
        logger.debug("No account found for %s", email)
        return None

    def find_all_by_email(self, email: str) -> List[Account]:
        """Return every account whose email matches exactly (drains all pages)."""
        return [a for a in self.iter_accounts() if a.email == email]

    def describe_account(self, account_id: str) -> Optional[Account]:
        """Fetch one account by ID. Returns None when the ID is unknown."""
        try:
            response = self._client.describe_account(AccountId=account_id)
        except ClientError as exc:
            code = exc.response.get("Error", {}).get("Code", "")
            if code == "AccountNotFoundException":
                return None
            raise _wrap(exc, "DescribeAccount") from exc
        except BotoCoreError as exc:
            raise _wrap(exc, "DescribeAccount") from exc
        return Account.from_api(response.get("Account", {}))

    def list_parents(self, account_id: str) -> List[str]:
        """Return the IDs of every parent (root or OU) of the account."""
        return [p["Id"]
                for page in self._pages("list_parents", "ListParents",
                                        ChildId=account_id)
                for p in page.get("Parents", [])]

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------
    def create(self, name: str, email: str) -> CreationTicket:
        """Submit a CreateAccount request. The result is a pending ticket."""
        try:
            response = self._client.create_account(AccountName=name, Email=email)
        except (ClientError, BotoCoreError) as exc:
            raise _wrap(exc, "CreateAccount") from exc
        ticket = CreationStatus.from_api(response.get("CreateAccountStatus", {}))
        logger.info("Submitted CreateAccount for %s (request %s)", email,
                    ticket.ticket_id)
        return ticket

    def get_creation_status(self, ticket_id: str) -> CreationStatus:
        try:
            response = self._client.describe_create_account_status(
                CreateAccountRequestId=ticket_id)
        except (ClientError, BotoCoreError) as exc:
            raise _wrap(exc, "DescribeCreateAccountStatus") from exc
        status = response.get("CreateAccountStatus") or {}
        if not status.get("Id"):
            status = dict(status, Id=ticket_id)
        return CreationStatus.from_api(status)
