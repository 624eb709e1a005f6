"""
Ledger services -- everything between business records and the kernel:
the posting outbox and the payroll, statutory and contractor adapters.
"""
