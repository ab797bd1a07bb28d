"""
tokenvest core module

Vesting ledger, schedule store, error hierarchy, configuration and
logging setup.
"""

__all__ = []
