# [TEMPLATE: CUI // SP-CTI]
"""ArcOrg - reversible AWS sub-account lifecycle.

Accounts are never deleted: destroy quarantines an account by moving it into
a closed organizational unit, and create adopts it back by email.
"""

__version__ = "0.1.0"
