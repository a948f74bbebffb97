"""
Documents app - trade and payroll documents.

Invoices, bills, receipts, payments, payslips and expense claims are
stored here and read by the cash flow and aging reports. Turning them
into vouchers is outside this app.
"""
