#!/usr/bin/env python3
# CUI // SP-CTI
"""ArcOrg Resilience - Structured Exception Hierarchy.

D4: Every fatal lifecycle condition is a typed exception carrying a short
category, a summary and a remediation hint. The host adapter turns these into
result dicts; nothing below is silently downgraded.

Usage:
    from arcorg.resilience.errors import AccountPendingClosureError

    raise AccountPendingClosureError(account_id="111111111111")
"""


class ArcOrgError(Exception):
    """Base exception for all ArcOrg errors.

    Attributes:
        summary: One-line description of what went wrong.
        remediation: What the operator should do about it.
        service: Name of the collaborator that raised (e.g. "organizations").
        retryable: Whether re-invoking the operation may succeed.
    """

    category = "error"

    def __init__(self, summary: str, remediation: str = "", service: str = "",
                 retryable: bool = False):
        super().__init__(summary)
        self.summary = summary
        self.remediation = remediation
        self.service = service
        self.retryable = retryable

    def to_dict(self) -> dict:
        return {
            "category": self.category,
            "summary": self.summary,
            "remediation": self.remediation,
            "retryable": self.retryable,
        }


class ArcOrgTransientError(ArcOrgError):
    """Transient error - the operation may succeed on re-invocation."""

    category = "transient"

    def __init__(self, summary: str, remediation: str = "", service: str = "",
                 retryable: bool = True):
        super().__init__(summary, remediation=remediation, service=service,
                         retryable=retryable)


class ArcOrgPermanentError(ArcOrgError):
    """Permanent error - retrying without operator action will not help."""

    category = "permanent"

    def __init__(self, summary: str, remediation: str = "", service: str = ""):
        super().__init__(summary, remediation=remediation, service=service,
                         retryable=False)


# ---------------------------------------------------------------------------
# Transient
# ---------------------------------------------------------------------------
class DirectoryError(ArcOrgTransientError):
    """An AWS Organizations call failed.

    Attributes:
        operation: API operation name (e.g. "ListAccounts").
        error_code: AWS error code, empty for transport-level failures.
    """

    category = "directory"

    def __init__(self, summary: str, operation: str = "", error_code: str = ""):
        super().__init__(
            summary,
            remediation="Check AWS credentials and connectivity, then retry.",
            service="organizations",
        )
        self.operation = operation
        self.error_code = error_code


class CreationTimeoutError(ArcOrgTransientError):
    """Account creation did not reach a terminal state within the poll budget."""

    category = "timeout"

    def __init__(self, ticket_id: str, attempts: int):
        super().__init__(
            "Account creation request {} still pending after {} polls.".format(
                ticket_id, attempts),
            remediation="Timeout issue. You can retry again.",
            service="organizations",
        )
        self.ticket_id = ticket_id
        self.attempts = attempts


class CreationErrorsExhaustedError(ArcOrgTransientError):
    """Every creation status poll failed; the outcome is unknown."""

    category = "timeout"

    def __init__(self, ticket_id: str, attempts: int, last_error: str = ""):
        super().__init__(
            "Could not read status of creation request {} in {} polls: {}".format(
                ticket_id, attempts, last_error or "unknown error"),
            remediation=(
                "Verify organizations:DescribeCreateAccountStatus permission; "
                "the account may still be created in the background."),
            service="organizations",
        )
        self.ticket_id = ticket_id
        self.attempts = attempts
        self.last_error = last_error


class DeadlineExceededError(ArcOrgTransientError):
    """The caller's operation deadline expired while waiting."""

    category = "deadline"

    def __init__(self, summary: str = "Operation deadline exceeded."):
        super().__init__(
            summary,
            remediation="Raise the operation deadline or retry later.",
        )


# ---------------------------------------------------------------------------
# Permanent
# ---------------------------------------------------------------------------
class ConflictError(ArcOrgPermanentError):
    """Directory state conflicts with the desired placement."""

    category = "conflict"


class AccountPendingClosureError(ConflictError):
    """The account matching the email is suspended (closure pending)."""

    def __init__(self, account_id: str = ""):
        super().__init__(
            "An account was found, however it is pending closure.",
            remediation=(
                "Please reopen the account or wait for aws to delete it."),
            service="organizations",
        )
        self.account_id = account_id


class ParentCardinalityError(ConflictError):
    """The account does not have exactly one parent unit."""

    def __init__(self, account_id: str, parents):
        super().__init__(
            "The account {} has too many or few parents ({}).".format(
                account_id, len(parents)),
            remediation="Possibly modified outside of the managed workflow.",
            service="organizations",
        )
        self.account_id = account_id
        self.parents = list(parents)


class DuplicateEmailError(ConflictError):
    """More than one account shares the desired email."""

    def __init__(self, email: str, account_ids):
        super().__init__(
            "{} accounts share the email {}: {}".format(
                len(account_ids), email, ", ".join(account_ids)),
            remediation="Resolve the duplicate accounts manually before creating.",
            service="organizations",
        )
        self.email = email
        self.account_ids = list(account_ids)


class ImmutableFieldError(ConflictError):
    """An immutable field differs between stored and desired state."""

    def __init__(self, fields):
        super().__init__(
            "Cannot modify account after creation (changed: {}).".format(
                ", ".join(fields)),
            remediation="Destroy this resource and re-create it.",
        )
        self.fields = list(fields)


class CreationFailedError(ArcOrgPermanentError):
    """AWS reported the creation request as FAILED."""

    category = "creation_failed"

    def __init__(self, ticket_id: str, reason: str = ""):
        super().__init__(
            "Account creation request {} failed: {}".format(
                ticket_id, reason or "Unknown"),
            remediation="Fix the reported cause (e.g. EMAIL_ALREADY_EXISTS) and retry.",
            service="organizations",
        )
        self.ticket_id = ticket_id
        self.reason = reason


class MoveError(ArcOrgPermanentError):
    """Moving an account between units failed."""

    category = "move"

    def __init__(self, account_id: str, from_unit_id, to_unit_id: str,
                 reason: str = "", error_code: str = ""):
        super().__init__(
            "Error moving the account {} from {} to {}: {}".format(
                account_id, from_unit_id or "<root>", to_unit_id, reason),
            remediation=(
                "Verify the account placement in the AWS console and "
                "reconcile manually."),
            service="organizations",
        )
        self.account_id = account_id
        self.from_unit_id = from_unit_id
        self.to_unit_id = to_unit_id
        self.error_code = error_code


class ValidationError(ArcOrgPermanentError):
    """Input rejected before any directory call."""

    category = "validation"

    def __init__(self, summary: str, field: str = ""):
        super().__init__(summary, remediation="Correct the input and retry.")
        self.field = field


class ConfigurationError(ArcOrgPermanentError):
    """Configuration error - missing or invalid configuration."""

    category = "configuration"

    def __init__(self, summary: str, config_key: str = ""):
        super().__init__(summary, remediation="Fix args/org_config.yaml.",
                         service="config")
        self.config_key = config_key
