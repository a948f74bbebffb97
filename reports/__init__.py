"""
Reports app - financial statements derived on demand.

Every generator reads persisted vouchers (and, for cash flow and aging,
documents) and returns a plain dict with a breakdown, a totals or
summary block, and a balance/reconciliation flag with its difference.
"""
