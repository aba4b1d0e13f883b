#!/usr/bin/env python3
# CUI // SP-CTI
"""ArcOrg Resilience Package - Errors and Correlation.

ADRs: D4 (errors), D5 (correlation).
"""

from arcorg.resilience.correlation import (  # noqa: F401
    CorrelationLogFilter,
    correlation_scope,
    get_correlation_id,
    set_correlation_id,
)
from arcorg.resilience.errors import (  # noqa: F401
    AccountPendingClosureError,
    ArcOrgError,
    ArcOrgPermanentError,
    ArcOrgTransientError,
    ConfigurationError,
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
