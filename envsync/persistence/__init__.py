"""
Persistence — run lock and audit ledger.
"""
