#!/usr/bin/env python3
# CUI // SP-CTI
"""Unit Mover - move an account between two organizational units.

The move is a single MoveAccount call. The postcondition is not verified;
callers that need certainty re-query placement through the directory client.
"""

import logging
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from arcorg.resilience.errors import MoveError

logger = logging.getLogger("arcorg.orgs.mover")


class UnitMover:
    """Moves accounts between organizational units."""

    def __init__(self, org_client):
        self._client = org_client

    def _root_id(self, account_id: str, to_unit_id: str) -> str:
        """Resolve the implicit root placement of a freshly created account."""
        try:
            roots = self._client.list_roots().get("Roots", [])
        except (ClientError, BotoCoreError) as exc:
            raise MoveError(account_id, None, to_unit_id,
                            reason="could not resolve organization root: {}".format(exc),
                            error_code=_error_code(exc)) from exc
        if not roots:
            raise MoveError(account_id, None, to_unit_id,
                            reason="organization has no root")
        return roots[0]["Id"]

    def move(self, account_id: str, from_unit_id: Optional[str], to_unit_id: str):
        """Move account_id into to_unit_id.

        Args:
            account_id: Directory account ID.
            from_unit_id: Current parent. None for a brand-new account still
                sitting in the organization root.
            to_unit_id: Destination OU.

        Raises:
            MoveError: the directory rejected the move.
        """
        source = from_unit_id or self._root_id(account_id, to_unit_id)
        logger.info("Moving account %s: %s -> %s", account_id, source, to_unit_id)
        try:
            self._client.move_account(
                AccountId=account_id,
                SourceParentId=source,
                DestinationParentId=to_unit_id,
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error("MoveAccount failed for %s: %s", account_id, exc)
            raise MoveError(account_id, source, to_unit_id, reason=str(exc),
                            error_code=_error_code(exc)) from exc


def _error_code(exc) -> str:
    if isinstance(exc, ClientError):
        return exc.response.get("Error", {}).get("Code", "")
    return ""
