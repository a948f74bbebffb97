# accounting/__init__.py
"""
Accounting app - Double-entry ledger.

This app provides:
- LedgerGroup / Ledger: Hierarchical chart of accounts
- FiscalYear: Period anchor for opening vs period figures
- Voucher / VoucherEntry: Balanced multi-line transactions
- Numbering: Concurrency-safe sequential document numbers
- Balance engine: The single debit/credit sign convention

Commands handle all mutations and record audit events.
"""
