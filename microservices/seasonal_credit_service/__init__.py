"""
Seasonal Credit Service

Seasonal credit campaigns for the isA platform.

Features:
- Campaign creation with validation of targeting and allocation mode
- Distribution to tenants' primary organizations or per application
- Credit ledger with atomic balance mutation and append-only transactions
- Expiry extension, expiry warnings and reclaiming of unused credit
"""

__version__ = "1.0.0"
