"""
Donation Kernel

The donation ledger and inventory reconciliation core:
- Donation intake across donor, guest and campaign channels
- Idempotent payment reconciliation keyed by checkout reference
- Append-only inventory adjustment ledger with row-level locking
- Campaign funding summaries derived on read
"""

__version__ = "0.1.0"
