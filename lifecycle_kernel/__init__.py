"""
Lifecycle Kernel - order lifecycle and archival consistency engine.

- Orders move between stage partitions inside one database transaction
- Order ids are unique across every lifecycle partition
- Product stock is adjusted only through the inventory ledger
- Whole entity graphs are archived and restored without duplication
"""

__version__ = "0.1.0"
