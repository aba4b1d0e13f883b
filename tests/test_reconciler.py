#!/usr/bin/env python3
# CUI // SP-CTI
"""Tests for arcorg.orgs.reconciler - the account lifecycle state machine.

Covers create (new account, adoption from the closed OU, duplicate warning,
suspended and parent-cardinality conflicts), read/refresh, update
immutability, destroy-time quarantine and import round-trips.
"""

import dataclasses

import pytest

from arcorg.orgs.creation_waiter import CreationWaiter
from arcorg.orgs.directory_client import AccountDirectoryClient
from arcorg.orgs.models import ManagedResourceRecord
from arcorg.orgs.reconciler import AccountReconciler
from arcorg.orgs.unit_mover import UnitMover
from arcorg.resilience.errors import (
    AccountPendingClosureError,
    ConflictError,
    CreationErrorsExhaustedError,
    CreationFailedError,
    CreationTimeoutError,
    DeadlineExceededError,
    DirectoryError,
    DuplicateEmailError,
    ImmutableFieldError,
    MoveError,
    ParentCardinalityError,
    ValidationError,
)
from tests.conftest import (
    ACTIVE_OU,
    CLOSED_OU,
    EMAIL,
    OTHER_OU,
    ROOT_ID,
    FakeOrganizations,
    client_error,
)

ACCOUNT_ID = "111111111111"


# ============================================================
# Create - account not found
# ============================================================
class TestCreateNew:
    def test_creates_waits_and_places(self, fake_orgs, reconciler, desired):
        result = reconciler.create(desired)

        assert result.placed
        assert not result.adopted
        assert result.warnings == []
        record = result.record
        assert record.account_id == "900000000001"
        assert record.external_id == "arcorg:900000000001"
        assert record.email == EMAIL
        assert record.active_unit_id == ACTIVE_OU
        assert record.closed_unit_id == CLOSED_OU
        assert fake_orgs.parents["900000000001"] == [ACTIVE_OU]

    def test_never_moves_before_create(self, fake_orgs, reconciler, desired):
        reconciler.create(desired)
        names = fake_orgs.call_names()
        assert names.index("create_account") < names.index("move_account")
        assert "list_parents" not in names
        move = [kw for name, kw in fake_orgs.calls if name == "move_account"]
        assert move == [{"AccountId": "900000000001", "SourceParentId": ROOT_ID,
                         "DestinationParentId": ACTIVE_OU}]

    def test_uses_waiter_account_id(self, fake_orgs, reconciler, desired, sleeps):
        fake_orgs.creation_script = ["IN_PROGRESS", "IN_PROGRESS", "SUCCEEDED"]
        result = reconciler.create(desired)
        assert result.record.account_id == "900000000001"
        assert len(sleeps) == 3

    def test_creation_failed(self, fake_orgs, reconciler, desired):
        fake_orgs.creation_script = ["IN_PROGRESS", "FAILED"]
        with pytest.raises(CreationFailedError) as exc_info:
            reconciler.create(desired)
        assert exc_info.value.reason == "EMAIL_ALREADY_EXISTS"
        assert fake_orgs.count("move_account") == 0

    def test_creation_timeout(self, fake_orgs, reconciler, desired):
        fake_orgs.creation_script = ["IN_PROGRESS"] * 60
        with pytest.raises(CreationTimeoutError) as exc_info:
            reconciler.create(desired)
        assert exc_info.value.retryable is True
        assert exc_info.value.attempts == 60
        assert fake_orgs.count("move_account") == 0

    def test_status_errors_exhausted(self, fake_orgs, reconciler, desired):
        fake_orgs.creation_script = [
            client_error("AccessDeniedException", "DescribeCreateAccountStatus")
            for _ in range(60)]
        with pytest.raises(CreationErrorsExhaustedError, match="AccessDenied"):
            reconciler.create(desired)

    def test_deadline_exceeded(self, fake_orgs, directory, desired):
        now = [0.0]

        def sleep(seconds):
            now[0] += seconds

        waiter = CreationWaiter(directory, sleep=sleep, clock=lambda: now[0])
        reconciler = AccountReconciler(directory, UnitMover(fake_orgs), waiter)
        fake_orgs.creation_script = ["IN_PROGRESS"] * 60
        with pytest.raises(DeadlineExceededError):
            reconciler.create(desired, deadline=25)
        assert fake_orgs.count("move_account") == 0

    def test_post_create_move_failure(self, fake_orgs, reconciler, desired):
        fake_orgs.fail("move_account", client_error(
            "DestinationParentNotFoundException", "MoveAccount"))
        with pytest.raises(MoveError) as exc_info:
            reconciler.create(desired)
        assert "900000000001" in exc_info.value.remediation

    def test_create_request_error(self, fake_orgs, reconciler, desired):
        fake_orgs.fail("create_account", client_error(
            "ConstraintViolationException", "CreateAccount"))
        with pytest.raises(DirectoryError):
            reconciler.create(desired)

    def test_lookup_error_aborts(self, fake_orgs, reconciler, desired):
        fake_orgs.fail("list_accounts", client_error("ServiceException", "ListAccounts"))
        with pytest.raises(DirectoryError):
            reconciler.create(desired)
        assert fake_orgs.mutating_calls() == []

    def test_invalid_placement_makes_no_calls(self, fake_orgs, reconciler, desired):
        bad = dataclasses.replace(desired, closed_unit_id=ACTIVE_OU)
        with pytest.raises(ValidationError):
            reconciler.create(bad)
        assert fake_orgs.calls == []


# ============================================================
# Create - account found
# ============================================================
class TestCreateExisting:
    def test_suspended_is_conflict_without_mutation(self, fake_orgs, reconciler,
                                                    desired):
        fake_orgs.add_account(ACCOUNT_ID, EMAIL, status="SUSPENDED",
                              parents=(CLOSED_OU,))
        with pytest.raises(AccountPendingClosureError) as exc_info:
            reconciler.create(desired)
        assert isinstance(exc_info.value, ConflictError)
        assert "reopen" in exc_info.value.remediation
        assert fake_orgs.mutating_calls() == []

    def test_pending_closure_is_conflict(self, fake_orgs, reconciler, desired):
        fake_orgs.add_account(ACCOUNT_ID, EMAIL, status="PENDING_CLOSURE",
                              parents=(CLOSED_OU,))
        with pytest.raises(AccountPendingClosureError):
            reconciler.create(desired)

    def test_adopts_from_closed_unit(self, fake_orgs, reconciler, desired):
        fake_orgs.add_account(ACCOUNT_ID, EMAIL, parents=(CLOSED_OU,))
        result = reconciler.create(desired)

        assert result.placed
        assert result.adopted
        assert result.record.account_id == ACCOUNT_ID
        assert result.record.external_id == "arcorg:" + ACCOUNT_ID
        assert fake_orgs.count("create_account") == 0
        assert fake_orgs.mutating_calls() == [("move_account", {
            "AccountId": ACCOUNT_ID,
            "SourceParentId": CLOSED_OU,
            "DestinationParentId": ACTIVE_OU,
        })]

    def test_adoption_move_failure(self, fake_orgs, reconciler, desired):
        fake_orgs.add_account(ACCOUNT_ID, EMAIL, parents=(CLOSED_OU,))
        fake_orgs.fail("move_account", client_error(
            "ConcurrentModificationException", "MoveAccount"))
        with pytest.raises(MoveError):
            reconciler.create(desired)

    @pytest.mark.parametrize("parent", [OTHER_OU, ACTIVE_OU, ROOT_ID])
    def test_active_elsewhere_warns_without_mutation(self, fake_orgs, reconciler,
                                                     desired, parent):
        fake_orgs.add_account(ACCOUNT_ID, EMAIL, parents=(parent,))
        result = reconciler.create(desired)

        assert not result.placed
        assert result.record is None
        assert len(result.warnings) == 1
        warning = result.warnings[0]
        assert "duplicate" in warning["detail"]
        assert warning["account_id"] == ACCOUNT_ID
        assert warning["unit_id"] == parent
        assert fake_orgs.mutating_calls() == []

    @pytest.mark.parametrize("parents", [(), (ACTIVE_OU, CLOSED_OU)])
    def test_parent_cardinality_conflict(self, fake_orgs, reconciler, desired,
                                         parents):
        fake_orgs.add_account(ACCOUNT_ID, EMAIL, parents=parents)
        with pytest.raises(ParentCardinalityError) as exc_info:
            reconciler.create(desired)
        assert exc_info.value.parents == list(parents)
        assert fake_orgs.mutating_calls() == []


class TestStrictEmailUniqueness:
    def _reconciler(self, fake):
        directory = AccountDirectoryClient(fake)
        waiter = CreationWaiter(directory, sleep=lambda s: None)
        return AccountReconciler(directory, UnitMover(fake), waiter,
                                 strict_email_uniqueness=True)

    def test_duplicates_are_conflict(self, desired):
        fake = FakeOrganizations(page_size=1)
        fake.add_account(ACCOUNT_ID, EMAIL, parents=(CLOSED_OU,))
        fake.add_account("222222222222", EMAIL, parents=(CLOSED_OU,))
        with pytest.raises(DuplicateEmailError) as exc_info:
            self._reconciler(fake).create(desired)
        assert exc_info.value.account_ids == [ACCOUNT_ID, "222222222222"]
        assert fake.mutating_calls() == []

    def test_single_match_adopts(self, desired):
        fake = FakeOrganizations(page_size=1)
        fake.add_account("333333333333", "x@example.com")
        fake.add_account(ACCOUNT_ID, EMAIL, parents=(CLOSED_OU,))
        result = self._reconciler(fake).create(desired)
        assert result.adopted

    def test_read_rejects_duplicates(self, desired):
        fake = FakeOrganizations(page_size=1)
        fake.add_account(ACCOUNT_ID, EMAIL)
        fake.add_account("222222222222", EMAIL)
        record = ManagedResourceRecord.from_placement(
            "arcorg:" + ACCOUNT_ID, ACCOUNT_ID, desired)
        with pytest.raises(DuplicateEmailError):
            self._reconciler(fake).read(record)
        assert fake.count("list_accounts") == 2

    def test_read_single_match_refreshes(self, desired):
        fake = FakeOrganizations(page_size=1)
        fake.add_account("555555555555", EMAIL)
        fake.add_account("333333333333", "x@example.com")
        record = ManagedResourceRecord.from_placement("arcorg:1", "1", desired)
        refreshed = self._reconciler(fake).read(record)
        assert refreshed.account_id == "555555555555"
        assert fake.count("list_accounts") == 2

    def test_no_match_creates(self, desired):
        fake = FakeOrganizations()
        assert self._reconciler(fake).create(desired).placed
        assert fake.count("create_account") == 1


# ============================================================
# Read
# ============================================================
class TestRead:
    def test_read_after_create_is_idempotent(self, reconciler, desired):
        record = reconciler.create(desired).record
        snapshot = dataclasses.replace(record)
        refreshed = reconciler.read(record)
        assert refreshed.account_id == snapshot.account_id
        assert refreshed.external_id == snapshot.external_id

    def test_absent_account_returns_none(self, reconciler, desired):
        record = ManagedResourceRecord.from_placement("arcorg:1", "1", desired)
        assert reconciler.read(record) is None

    def test_refreshes_identity_not_placement(self, fake_orgs, reconciler, desired):
        fake_orgs.add_account("555555555555", EMAIL, parents=(OTHER_OU,))
        record = ManagedResourceRecord.from_placement("arcorg:1", "1", desired)
        refreshed = reconciler.read(record)
        assert refreshed.account_id == "555555555555"
        assert refreshed.external_id == "arcorg:555555555555"
        assert refreshed.active_unit_id == ACTIVE_OU
        assert "list_parents" not in fake_orgs.call_names()

    def test_lookup_error_propagates(self, fake_orgs, reconciler, desired):
        fake_orgs.fail("list_accounts", client_error("ServiceException", "ListAccounts"))
        record = ManagedResourceRecord.from_placement("arcorg:1", "1", desired)
        with pytest.raises(DirectoryError):
            reconciler.read(record)


# ============================================================
# Update
# ============================================================
class TestUpdate:
    @pytest.mark.parametrize("field,value", [
        ("email", "other@example.com"),
        ("name", "renamed"),
        ("active_unit_id", OTHER_OU),
        ("closed_unit_id", OTHER_OU),
    ])
    def test_changed_field_is_conflict(self, fake_orgs, reconciler, desired,
                                       field, value):
        record = ManagedResourceRecord.from_placement(
            "arcorg:" + ACCOUNT_ID, ACCOUNT_ID, desired)
        with pytest.raises(ImmutableFieldError) as exc_info:
            reconciler.update(record, dataclasses.replace(desired, **{field: value}))
        assert exc_info.value.fields == [field]
        assert "re-create" in exc_info.value.remediation
        assert fake_orgs.calls == []

    def test_reports_every_changed_field(self, reconciler, desired):
        record = ManagedResourceRecord.from_placement("arcorg:1", "1", desired)
        changed = dataclasses.replace(desired, email="b@example.com", name="b")
        with pytest.raises(ImmutableFieldError) as exc_info:
            reconciler.update(record, changed)
        assert exc_info.value.fields == ["email", "name"]

    def test_identical_is_noop(self, fake_orgs, reconciler, desired):
        record = ManagedResourceRecord.from_placement("arcorg:1", "1", desired)
        assert reconciler.update(record, desired) is record
        assert fake_orgs.calls == []

    def test_fills_unset_fields_after_import(self, reconciler, desired):
        record = ManagedResourceRecord(external_id="arcorg:1", account_id="1",
                                       email=EMAIL, name="team-a",
                                       active_unit_id=ACTIVE_OU)
        updated = reconciler.update(record, desired)
        assert updated.closed_unit_id == CLOSED_OU


# ============================================================
# Destroy
# ============================================================
class TestDestroy:
    def test_quarantines_with_exactly_one_move(self, fake_orgs, reconciler, desired):
        record = reconciler.create(desired).record
        fake_orgs.calls.clear()
        reconciler.destroy(record)
        assert fake_orgs.calls == [("move_account", {
            "AccountId": record.account_id,
            "SourceParentId": ACTIVE_OU,
            "DestinationParentId": CLOSED_OU,
        })]
        assert fake_orgs.parents[record.account_id] == [CLOSED_OU]

    def test_move_failure_raises(self, fake_orgs, reconciler, desired):
        fake_orgs.add_account(ACCOUNT_ID, EMAIL, parents=(OTHER_OU,))
        record = ManagedResourceRecord.from_placement(
            "arcorg:" + ACCOUNT_ID, ACCOUNT_ID, desired)
        with pytest.raises(MoveError):
            reconciler.destroy(record)
        assert fake_orgs.count("move_account") == 1

    def test_destroy_then_create_adopts(self, fake_orgs, reconciler, desired):
        first = reconciler.create(desired).record
        reconciler.destroy(first)
        again = reconciler.create(desired)
        assert again.adopted
        assert again.record.account_id == first.account_id
        assert fake_orgs.count("create_account") == 1

    def test_unknown_units_rejected(self, fake_orgs, reconciler):
        record = ManagedResourceRecord(external_id="arcorg:1", account_id="1")
        with pytest.raises(ValidationError):
            reconciler.destroy(record)
        assert fake_orgs.calls == []


# ============================================================
# Import
# ============================================================
class TestImport:
    def test_import_echoes_id(self, fake_orgs, reconciler):
        record = reconciler.import_state("arcorg:" + ACCOUNT_ID)
        assert record.external_id == "arcorg:" + ACCOUNT_ID
        assert record.account_id == ACCOUNT_ID
        assert record.email is None
        assert fake_orgs.calls == []

    def test_import_rejects_malformed(self, reconciler):
        with pytest.raises(ValidationError):
            reconciler.import_state("123456789012")

    def test_import_then_read_round_trip(self, fake_orgs, reconciler, desired):
        created = reconciler.create(desired).record
        imported = reconciler.import_state(created.external_id)
        refreshed = reconciler.read(imported)
        assert refreshed.account_id == created.account_id
        assert refreshed.external_id == created.external_id
        assert refreshed.email == EMAIL
        assert refreshed.name == "team-a"
        assert refreshed.active_unit_id is None
        assert refreshed.closed_unit_id is None

    def test_imported_read_does_not_infer_placement(self, fake_orgs, reconciler,
                                                    desired):
        fake_orgs.add_account(ACCOUNT_ID, EMAIL, name="team-a",
                              parents=(CLOSED_OU,))
        record = reconciler.read(reconciler.import_state("arcorg:" + ACCOUNT_ID))
        assert record.active_unit_id is None
        assert "list_parents" not in fake_orgs.call_names()

        updated = reconciler.update(record, desired)
        assert updated.active_unit_id == ACTIVE_OU
        assert updated.closed_unit_id == CLOSED_OU

    def test_import_of_unknown_account_reads_as_absent(self, reconciler):
        imported = reconciler.import_state("arcorg:404040404040")
        assert reconciler.read(imported) is None
