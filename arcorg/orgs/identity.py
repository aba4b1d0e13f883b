#!/usr/bin/env python3
# CUI // SP-CTI
"""External identifier mapping: "<prefix>:<account_id>".

The external ID is an opaque correlation handle. It is only parsed to recover
the account ID of an imported record that has not been refreshed yet.
"""

from arcorg.resilience.errors import ValidationError

DEFAULT_ID_PREFIX = "arcorg"
SEPARATOR = ":"


def derive_external_id(account_id: str, prefix: str = DEFAULT_ID_PREFIX) -> str:
    """Build the external ID for a directory account ID."""
    if not account_id:
        raise ValidationError("account_id is required to derive an external id.",
                              field="account_id")
    return "{}{}{}".format(prefix, SEPARATOR, account_id)


def parse_external_id(external_id: str, prefix: str = DEFAULT_ID_PREFIX) -> str:
    """Return the account ID embedded in an external ID.

    Raises:
        ValidationError: the prefix is wrong or the account part is empty.
    """
    head, sep, account_id = (external_id or "").partition(SEPARATOR)
    if not sep or head != prefix or not account_id:
        raise ValidationError(
            "Malformed id '{}'; expected '{}{}<account_id>'.".format(
                external_id, prefix, SEPARATOR),
            field="id")
    return account_id


def is_external_id(value: str, prefix: str = DEFAULT_ID_PREFIX) -> bool:
    try:
        parse_external_id(value, prefix)
    except ValidationError:
        return False
    return True
