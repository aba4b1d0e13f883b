#!/usr/bin/env python3
"""ArcOrg -- Managed AWS Account Lifecycle.

CUI // SP-CTI

Runs create / read / update / destroy / import for managed AWS sub-accounts
over persisted state. Destroy never deletes an account: it quarantines it in
the closed OU, and a later create with the same email adopts it back.

Each operation runs under its own correlation ID, commits state only when
the transition fully succeeds, writes one audit trail entry, and returns a
result dict.

Usage:
    # Create (or adopt) an account and place it in the active OU
    arcorg-accounts --create --email team-a@example.com --name team-a \\
        --unit-id ou-abcd-11111111 --closed-unit-id ou-abcd-22222222

    # Refresh a managed record from AWS
    arcorg-accounts --read --id arcorg:111111111111

    # Quarantine (move to the closed OU)
    arcorg-accounts --destroy --id arcorg:111111111111

    # Start managing an existing account, then refresh it
    arcorg-accounts --import --id arcorg:111111111111
    arcorg-accounts --read --id arcorg:111111111111

    # Show managed records
    arcorg-accounts --list --json
"""

import argparse
import json
import logging
import sys
import time
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Callable, Dict, Optional

from arcorg.audit.audit_logger import log_event
from arcorg.orgs.config import OrgConfig, build_reconciler
from arcorg.orgs.identity import is_external_id
from arcorg.orgs.models import DesiredPlacement
from arcorg.orgs.reconciler import AccountReconciler
from arcorg.orgs.state_store import StateStore
from arcorg.resilience.correlation import CorrelationLogFilter, correlation_scope
from arcorg.resilience.errors import ArcOrgError, ValidationError

logger = logging.getLogger("arcorg.orgs.account_manager")

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(correlation_id)s] %(name)s: %(message)s"


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class AccountManager:
    """Managed-resource CRUD over a reconciler and a state store."""

    def __init__(self, reconciler: AccountReconciler, store: StateStore,
                 deadline_seconds: Optional[float] = None,
                 clock: Callable[[], float] = time.monotonic,
                 actor: str = "arcorg"):
        self._reconciler = reconciler
        self._store = store
        self._deadline_seconds = deadline_seconds
        self._clock = clock
        self._actor = actor

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _audit(self, event_type: str, action: str, external_id=None,
               account_id=None, details=None):
        log_event(self._store.db_path, event_type, action, actor=self._actor,
                  external_id=external_id, account_id=account_id,
                  details=details)

    @staticmethod
    def _result(operation: str, correlation_id: str) -> Dict:
        return {
            "operation": operation,
            "status": "failed",
            "record": None,
            "warnings": [],
            "correlation_id": correlation_id,
            "timestamp": _now(),
        }

    def _fail(self, result: Dict, exc: ArcOrgError, event_type: str,
              external_id=None, account_id=None, details=None) -> Dict:
        logger.error("%s failed: %s", result["operation"], exc.summary)
        result["status"] = "failed"
        result["error"] = exc.to_dict()
        self._audit(event_type, exc.summary, external_id=external_id,
                    account_id=account_id,
                    details=dict(exc.to_dict(), **(details or {})))
        return result

    def _load(self, external_id: str):
        record = self._store.get(external_id)
        if record is None:
            raise ValidationError(
                "No managed account with id {}.".format(external_id), field="id")
        return record

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    def create(self, desired: DesiredPlacement) -> Dict:
        with correlation_scope() as cid:
            result = self._result("create", cid)
            deadline = None
            if self._deadline_seconds:
                deadline = self._clock() + self._deadline_seconds
            try:
                outcome = self._reconciler.create(desired, deadline=deadline)
            except ArcOrgError as exc:
                return self._fail(result, exc, "account.create_failed",
                                  details={"email": desired.email})

            if not outcome.placed:
                result["status"] = "skipped"
                result["warnings"] = outcome.warnings
                warning = outcome.warnings[0] if outcome.warnings else {}
                self._audit("account.duplicate_skipped", warning.get("summary", ""),
                            account_id=warning.get("account_id"),
                            details={"email": desired.email,
                                     "unit_id": warning.get("unit_id")})
                return result

            record = outcome.record
            self._store.save(record)
            result["status"] = "adopted" if outcome.adopted else "placed"
            result["record"] = record.to_dict()
            self._audit("account.adopted" if outcome.adopted else "account.created",
                        "Placed {} in {}".format(record.account_id,
                                                 record.active_unit_id),
                        external_id=record.external_id,
                        account_id=record.account_id)
            return result

    def read(self, external_id: str) -> Dict:
        with correlation_scope() as cid:
            result = self._result("read", cid)
            try:
                record = self._load(external_id)
                refreshed = self._reconciler.read(record)
            except ArcOrgError as exc:
                return self._fail(result, exc, "account.read_failed",
                                  external_id=external_id)

            if refreshed is None:
                self._store.delete(external_id)
                result["status"] = "removed"
                self._audit("account.removed",
                            "Account no longer found; record removed",
                            external_id=external_id)
                return result

            self._store.save(refreshed, previous_id=external_id)
            result["status"] = "refreshed"
            result["record"] = refreshed.to_dict()
            self._audit("account.refreshed", "Refreshed from directory",
                        external_id=refreshed.external_id,
                        account_id=refreshed.account_id)
            return result

    def update(self, external_id: str, desired: DesiredPlacement) -> Dict:
        with correlation_scope() as cid:
            result = self._result("update", cid)
            try:
                record = self._load(external_id)
                before = asdict(record)
                updated = self._reconciler.update(record, desired)
            except ArcOrgError as exc:
                return self._fail(result, exc, "account.update_rejected",
                                  external_id=external_id)

            result["record"] = updated.to_dict()
            if asdict(updated) == before:
                result["status"] = "unchanged"
                return result
            self._store.save(updated)
            result["status"] = "updated"
            self._audit("account.updated", "Filled unset fields from desired state",
                        external_id=external_id, account_id=updated.account_id)
            return result

    def destroy(self, external_id: str) -> Dict:
        with correlation_scope() as cid:
            result = self._result("destroy", cid)
            record = None
            try:
                record = self._load(external_id)
                self._reconciler.destroy(record)
            except ArcOrgError as exc:
                return self._fail(result, exc, "account.quarantine_failed",
                                  external_id=external_id,
                                  account_id=record.account_id if record else None)

            self._store.delete(external_id)
            result["status"] = "quarantined"
            result["record"] = record.to_dict()
            self._audit("account.quarantined",
                        "Moved {} to {}".format(record.account_id,
                                                record.closed_unit_id),
                        external_id=external_id, account_id=record.account_id)
            return result

    def import_(self, external_id: str) -> Dict:
        with correlation_scope() as cid:
            result = self._result("import", cid)
            try:
                if self._store.get(external_id) is not None:
                    raise ValidationError(
                        "{} is already managed.".format(external_id), field="id")
                record = self._reconciler.import_state(external_id)
            except ArcOrgError as exc:
                return self._fail(result, exc, "account.import_failed",
                                  external_id=external_id)

            self._store.save(record)
            result["status"] = "imported"
            result["record"] = record.to_dict()
            self._audit("account.imported", "Imported by id",
                        external_id=external_id, account_id=record.account_id)
            return result

    def list_records(self) -> Dict:
        records = [r.to_dict() for r in self._store.list_records()]
        return {"operation": "list", "status": "ok", "count": len(records),
                "records": records, "timestamp": _now()}


# ============================================================================
# CLI
# ============================================================================

def configure_logging(level: str = "INFO"):
    """Root logging with correlation IDs on every line."""
    handler = logging.StreamHandler(sys.stderr)
    handler.addFilter(CorrelationLogFilter())
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO),
                        handlers=[handler], force=True)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("boto3").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def build_manager(config: OrgConfig, org_client=None) -> AccountManager:
    return AccountManager(
        build_reconciler(config, org_client=org_client),
        StateStore(config.db_path),
        deadline_seconds=config.waiter.deadline_seconds,
    )


def _print_result(data, as_json=False):
    """Print result to stdout."""
    if as_json:
        print(json.dumps(data, indent=2, default=str))
        return
    for key, value in data.items():
        if isinstance(value, dict):
            print("  {}:".format(key))
            for k, v in value.items():
                print("    {}: {}".format(k, v))
        elif isinstance(value, list):
            print("  {}:".format(key))
            for item in value:
                if isinstance(item, dict):
                    print("    - {}".format(
                        ", ".join("{}: {}".format(k, v) for k, v in item.items())))
                else:
                    print("    - {}".format(item))
        else:
            print("  {}: {}".format(key, value))


def _desired_from_args(parser, args) -> DesiredPlacement:
    missing = [flag for flag, value in (
        ("--email", args.email), ("--name", args.name),
        ("--unit-id", args.unit_id), ("--closed-unit-id", args.closed_unit_id),
    ) if not value]
    if missing:
        parser.error("requires {}".format(", ".join(missing)))
    return DesiredPlacement(email=args.email, name=args.name,
                            active_unit_id=args.unit_id,
                            closed_unit_id=args.closed_unit_id)


def main(argv=None, org_client=None):
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="CUI // SP-CTI -- ArcOrg managed AWS account lifecycle",
        formatter_class=argparse.RawDescriptionHelpFormatter)

    action = parser.add_mutually_exclusive_group(required=True)
    action.add_argument("--create", action="store_true",
                        help="Create or adopt an account and place it in --unit-id")
    action.add_argument("--read", action="store_true",
                        help="Refresh a managed record from AWS")
    action.add_argument("--update", action="store_true",
                        help="Check desired state against a managed record")
    action.add_argument("--destroy", action="store_true",
                        help="Quarantine: move the account to --closed-unit-id")
    action.add_argument("--import", action="store_true", dest="import_",
                        help="Start managing an account by id")
    action.add_argument("--list", action="store_true",
                        help="List managed records")

    parser.add_argument("--email", type=str, help="Account root email")
    parser.add_argument("--name", type=str, help="Account name")
    parser.add_argument("--unit-id", type=str, help="Active organizational unit id")
    parser.add_argument("--closed-unit-id", type=str,
                        help="Closed (quarantine) organizational unit id")
    parser.add_argument("--id", type=str, dest="external_id",
                        help="Managed id (arcorg:<account_id>)")
    parser.add_argument("--config", type=str, help="Path to org_config.yaml")
    parser.add_argument("--json", action="store_true", dest="as_json",
                        help="Output as JSON")

    args = parser.parse_args(argv)

    try:
        config = OrgConfig.load(args.config)
        configure_logging(config.log_level)
        manager = build_manager(config, org_client=org_client)

        if args.create:
            result = manager.create(_desired_from_args(parser, args))
        elif args.list:
            result = manager.list_records()
        else:
            if not args.external_id:
                parser.error("requires --id")
            if args.import_ and not is_external_id(args.external_id,
                                                   config.reconciler.id_prefix):
                parser.error("--id must look like {}:<account_id>".format(
                    config.reconciler.id_prefix))
            if args.read:
                result = manager.read(args.external_id)
            elif args.update:
                result = manager.update(args.external_id,
                                        _desired_from_args(parser, args))
            elif args.destroy:
                result = manager.destroy(args.external_id)
            else:
                result = manager.import_(args.external_id)

        _print_result(result, args.as_json)
        if result.get("status") == "failed":
            sys.exit(1)

    except ArcOrgError as exc:
        print("ERROR: {} {}".format(exc.summary, exc.remediation).strip(),
              file=sys.stderr)
        sys.exit(1)
    except Exception as exc:
        print("FATAL: {}".format(exc), file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
