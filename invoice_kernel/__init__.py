"""
Invoice Kernel

Turns fulfilled commerce orders into durable, sequentially numbered invoices:
- Gap-free number allocation from a single locked counter row
- At most one invoice per order, enforced by a storage-level constraint
- Invoice status lifecycle with optimistic transition checks
- Aggregate invoice reporting
"""

__version__ = "0.1.0"
