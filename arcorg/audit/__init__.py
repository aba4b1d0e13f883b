# [TEMPLATE: CUI // SP-CTI]
"""Append-only audit trail for account lifecycle transitions."""
