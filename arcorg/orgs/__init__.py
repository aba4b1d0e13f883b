# [TEMPLATE: CUI // SP-CTI]
"""AWS Organizations account lifecycle.

Collaborators (stateless, injected with one boto3 Organizations client):
  - AccountDirectoryClient: paginated lookup by email, CreateAccount, status
  - UnitMover: MoveAccount between two OUs
  - CreationWaiter: bounded poll of a CreateAccount request

Core:
  - AccountReconciler: create / read / update / destroy / import transitions

ADRs: D1 (injected client), D6 (waiter error policy), D7 (injected clock).
"""

from arcorg.orgs.creation_waiter import CreationWaiter, WaitResult, WaitStatus  # noqa: F401
from arcorg.orgs.directory_client import AccountDirectoryClient  # noqa: F401
from arcorg.orgs.identity import derive_external_id, parse_external_id  # noqa: F401
from arcorg.orgs.models import (  # noqa: F401
    Account,
    AccountStatus,
    CreateResult,
    CreationState,
    CreationStatus,
    DesiredPlacement,
    ManagedResourceRecord,
)
from arcorg.orgs.reconciler import AccountReconciler  # noqa: F401
from arcorg.orgs.unit_mover import UnitMover  # noqa: F401
