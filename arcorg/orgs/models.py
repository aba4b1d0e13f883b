#!/usr/bin/env python3
# CUI // SP-CTI
"""Data model for the account lifecycle.

Account and CreationStatus are snapshots of directory truth and are never
cached between operations. DesiredPlacement is the operator's declared intent.
ManagedResourceRecord is the persisted link between the two.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from arcorg.resilience.errors import ValidationError


# ---------------------------------------------------------------------------
# Directory snapshots
# ---------------------------------------------------------------------------
class AccountStatus(Enum):
    ACTIVE = "ACTIVE"
    SUSPENDED = "SUSPENDED"     # closure pending (provider-side quarantine)
    OTHER = "OTHER"

    @classmethod
    def from_provider(cls, value: Optional[str]) -> "AccountStatus":
        """Map an Organizations account status onto the lifecycle status.

        PENDING_CLOSURE is folded into SUSPENDED (D8).
        """
        if value == "ACTIVE":
            return cls.ACTIVE
        if value in ("SUSPENDED", "PENDING_CLOSURE"):
            return cls.SUSPENDED
        return cls.OTHER


@dataclass(frozen=True)
class Account:
    """One AWS sub-account as reported by ListAccounts / DescribeAccount."""
    provider_account_id: str
    email: str
    name: str = ""
    status: AccountStatus = AccountStatus.OTHER
    raw_status: str = ""
    arn: str = ""

    @classmethod
    def from_api(cls, data: Dict) -> "Account":
        raw = data.get("Status") or data.get("State") or ""
        return cls(
            provider_account_id=data.get("Id", ""),
            email=data.get("Email", ""),
            name=data.get("Name", ""),
            status=AccountStatus.from_provider(raw),
            raw_status=raw,
            arn=data.get("Arn", ""),
        )


class CreationState(Enum):
    PENDING = "PENDING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"

    @classmethod
    def from_provider(cls, value: Optional[str]) -> "CreationState":
        if value == "SUCCEEDED":
            return cls.SUCCEEDED
        if value == "FAILED":
            return cls.FAILED
        return cls.PENDING


@dataclass(frozen=True)
class CreationStatus:
    """State of an asynchronous CreateAccount request."""
    ticket_id: str
    state: CreationState = CreationState.PENDING
    account_id: Optional[str] = None
    failure_reason: str = ""

    @classmethod
    def from_api(cls, data: Dict) -> "CreationStatus":
        return cls(
            ticket_id=data.get("Id", ""),
            state=CreationState.from_provider(data.get("State")),
            account_id=data.get("AccountId") or None,
            failure_reason=data.get("FailureReason", ""),
        )


# The ticket returned by CreateAccount has the same shape as a status poll.
CreationTicket = CreationStatus


# ---------------------------------------------------------------------------
# Declared intent
# ---------------------------------------------------------------------------
IMMUTABLE_FIELDS = ("email", "name", "active_unit_id", "closed_unit_id")


@dataclass(frozen=True)
class DesiredPlacement:
    """Operator-declared placement. Immutable for the life of a record."""
    email: str
    name: str
    active_unit_id: str
    closed_unit_id: str

    def validate(self):
        """Reject unusable placements before any directory call (D9)."""
        for name in IMMUTABLE_FIELDS:
            value = getattr(self, name)
            if not value or not str(value).strip():
                raise ValidationError("{} must be a non-empty string.".format(name),
                                      field=name)
        if "@" not in self.email:
            raise ValidationError("Valid email required for AWS account creation.",
                                  field="email")
        if self.active_unit_id == self.closed_unit_id:
            raise ValidationError(
                "active_unit_id and closed_unit_id must differ.",
                field="closed_unit_id")


# ---------------------------------------------------------------------------
# Persisted state
# ---------------------------------------------------------------------------
@dataclass
class ManagedResourceRecord:
    """Persisted state round-tripped by the host: {id, account_id, units, email, name}.

    Fields other than external_id are None after an import until the next read.
    """
    external_id: str
    account_id: Optional[str] = None
    email: Optional[str] = None
    name: Optional[str] = None
    active_unit_id: Optional[str] = None
    closed_unit_id: Optional[str] = None

    @classmethod
    def from_placement(cls, external_id: str, account_id: str,
                       desired: DesiredPlacement) -> "ManagedResourceRecord":
        return cls(
            external_id=external_id,
            account_id=account_id,
            email=desired.email,
            name=desired.name,
            active_unit_id=desired.active_unit_id,
            closed_unit_id=desired.closed_unit_id,
        )

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["id"] = data.pop("external_id")
        return data


@dataclass
class CreateResult:
    """Outcome of a create transition.

    record is None when the create was skipped with a warning (duplicate
    email found active elsewhere).
    """
    record: Optional[ManagedResourceRecord] = None
    warnings: List[Dict[str, str]] = field(default_factory=list)
    adopted: bool = False

    @property
    def placed(self) -> bool:
        return self.record is not None
