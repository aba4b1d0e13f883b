#!/usr/bin/env python3
# CUI // SP-CTI
"""Account Reconciler - the account lifecycle state machine.

Replaces native account closure with a reversible quarantine: destroy moves
the account from its active OU into a closed OU, and a later create for the
same email adopts it back.

    ABSENT -> RECONCILING -> PLACED | CONFLICT
    PLACED -> QUARANTINED (destroy)

Every transition re-resolves the account by email; no directory state is
carried between operations. Fatal conditions raise an ArcOrgError subclass
and commit nothing. The only non-fatal abort is an account with the desired
email already active in some other OU, which is reported as a warning.

Usage:
    reconciler = AccountReconciler(directory, mover, waiter)
    result = reconciler.create(DesiredPlacement(
        email="team-a@example.com", name="team-a",
        active_unit_id="ou-abcd-active", closed_unit_id="ou-abcd-closed"))
"""

import logging
from typing import Dict, List, Optional

from arcorg.orgs.creation_waiter import WaitStatus
from arcorg.orgs.identity import DEFAULT_ID_PREFIX, derive_external_id, parse_external_id
from arcorg.orgs.models import (
    IMMUTABLE_FIELDS,
    AccountStatus,
    CreateResult,
    DesiredPlacement,
    ManagedResourceRecord,
)
from arcorg.resilience.errors import (
    AccountPendingClosureError,
    CreationErrorsExhaustedError,
    CreationFailedError,
    CreationTimeoutError,
    DeadlineExceededError,
    DuplicateEmailError,
    ImmutableFieldError,
    MoveError,
    ParentCardinalityError,
    ValidationError,
)

logger = logging.getLogger("arcorg.orgs.reconciler")

DUPLICATE_WARNING = {
    "summary": "An account was already found in the same organizational unit.",
    "detail": (
        "If this account was not part of a timeout issue you may have "
        "duplicate account emails."),
}


class AccountReconciler:
    """Drives one managed account to its desired placement."""

    def __init__(self, directory, mover, waiter,
                 strict_email_uniqueness: bool = False,
                 id_prefix: str = DEFAULT_ID_PREFIX):
        self._directory = directory
        self._mover = mover
        self._waiter = waiter
        self.strict_email_uniqueness = strict_email_uniqueness
        self.id_prefix = id_prefix

    def _external_id(self, account_id: str) -> str:
        return derive_external_id(account_id, self.id_prefix)

    def _lookup(self, email: str):
        if not self.strict_email_uniqueness:
            return self._directory.find_by_email(email)
        matches = self._directory.find_all_by_email(email)
        if len(matches) > 1:
            raise DuplicateEmailError(
                email, [a.provider_account_id for a in matches])
        return matches[0] if matches else None

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------
    def create(self, desired: DesiredPlacement,
               deadline: Optional[float] = None) -> CreateResult:
        """Create or adopt the account for desired.email and place it.

        Returns:
            CreateResult with the record to persist, or with no record and a
            warning when the email is already active in another unit.
        """
        desired.validate()
        account = self._lookup(desired.email)

        if account is None:
            account_id = self._create_new(desired, deadline)
            return CreateResult(
                record=ManagedResourceRecord.from_placement(
                    self._external_id(account_id), account_id, desired))

        account_id = account.provider_account_id
        if account.status is AccountStatus.SUSPENDED:
            logger.error("Account %s for %s is pending closure (%s)",
                         account_id, desired.email, account.raw_status)
            raise AccountPendingClosureError(account_id)

        parents = self._directory.list_parents(account_id)
        if len(parents) != 1:
            raise ParentCardinalityError(account_id, parents)

        if parents[0] != desired.closed_unit_id:
            logger.warning("Account %s for %s already placed in %s; not moving",
                           account_id, desired.email, parents[0])
            warning = dict(DUPLICATE_WARNING, account_id=account_id,
                           unit_id=parents[0])
            return CreateResult(warnings=[warning])

        logger.info("Adopting quarantined account %s from %s", account_id,
                    desired.closed_unit_id)
        self._mover.move(account_id, desired.closed_unit_id,
                         desired.active_unit_id)
        return CreateResult(
            record=ManagedResourceRecord.from_placement(
                self._external_id(account_id), account_id, desired),
            adopted=True)

    def _create_new(self, desired: DesiredPlacement,
                    deadline: Optional[float]) -> str:
        ticket = self._directory.create(desired.name, desired.email)
        result = self._waiter.wait(ticket.ticket_id, deadline=deadline)

        if result.status is WaitStatus.FAILED:
            raise CreationFailedError(ticket.ticket_id, result.failure_reason)
        if result.status is WaitStatus.TIMEOUT:
            raise CreationTimeoutError(ticket.ticket_id, result.attempts)
        if result.status is WaitStatus.EXHAUSTED_WITH_ERRORS:
            raise CreationErrorsExhaustedError(ticket.ticket_id, result.attempts,
                                               result.last_error)
        if result.status is WaitStatus.DEADLINE_EXCEEDED:
            raise DeadlineExceededError(
                "Deadline exceeded waiting for creation request {}.".format(
                    ticket.ticket_id))

        account_id = result.account_id
        try:
            self._mover.move(account_id, None, desired.active_unit_id)
        except MoveError as exc:
            exc.remediation = (
                "Account {} was created but left in the organization root; "
                "move it to {} manually or re-run create to adopt it.".format(
                    account_id, desired.active_unit_id))
            raise
        logger.info("Created account %s for %s in %s", account_id,
                    desired.email, desired.active_unit_id)
        return account_id

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------
    def read(self, record: ManagedResourceRecord) -> Optional[ManagedResourceRecord]:
        """Refresh identity from the directory. None means the account is gone.

        Placement is neither verified nor inferred here. An imported record
        gets email and name from DescribeAccount; its unit IDs stay unset
        until update fills them from the desired placement.
        """
        if not record.email:
            return self._read_imported(record)

        account = self._lookup(record.email)
        if account is None:
            logger.info("Account for %s no longer exists; dropping record",
                        record.email)
            return None
        account_id = account.provider_account_id
        record.account_id = account_id
        record.external_id = self._external_id(account_id)
        return record

    def _read_imported(self, record: ManagedResourceRecord) -> Optional[ManagedResourceRecord]:
        account_id = record.account_id or parse_external_id(
            record.external_id, self.id_prefix)
        account = self._directory.describe_account(account_id)
        if account is None:
            logger.info("Imported account %s not found", account_id)
            return None
        record.account_id = account.provider_account_id
        record.external_id = self._external_id(account.provider_account_id)
        record.email = account.email
        record.name = account.name
        return record

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------
    def update(self, record: ManagedResourceRecord,
               desired: DesiredPlacement) -> ManagedResourceRecord:
        """No field is mutable in place; unset (imported) fields are filled."""
        changed: List[str] = []
        fills: Dict[str, str] = {}
        for name in IMMUTABLE_FIELDS:
            stored = getattr(record, name)
            wanted = getattr(desired, name)
            if stored is None:
                fills[name] = wanted
            elif stored != wanted:
                changed.append(name)
        if changed:
            raise ImmutableFieldError(changed)
        for name, value in fills.items():
            setattr(record, name, value)
        return record

    # ------------------------------------------------------------------
    # Destroy / Import
    # ------------------------------------------------------------------
    def destroy(self, record: ManagedResourceRecord):
        """Quarantine: move active_unit_id -> closed_unit_id. Raises MoveError."""
        for name in ("account_id", "active_unit_id", "closed_unit_id"):
            if not getattr(record, name):
                raise ValidationError(
                    "Cannot quarantine {}: {} is unknown; refresh or update "
                    "the record first.".format(record.external_id, name),
                    field=name)
        self._mover.move(record.account_id, record.active_unit_id,
                         record.closed_unit_id)
        logger.info("Quarantined account %s into %s", record.account_id,
                    record.closed_unit_id)

    def import_state(self, external_id: str) -> ManagedResourceRecord:
        """Accept an external ID as-is; the next read fills the rest."""
        account_id = parse_external_id(external_id, self.id_prefix)
        return ManagedResourceRecord(external_id=external_id,
                                     account_id=account_id)
