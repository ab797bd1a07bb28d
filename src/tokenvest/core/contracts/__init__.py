"""
Asset collaborators for the vesting ledger.

- ERC20Token: fungible token standard
- TokenCustody: binds a token to the ledger's custody address
"""

from .erc20 import AssetTransfer, ERC20Token, TokenCustody, TokenError, ZERO_ADDRESS

__all__ = [
    "AssetTransfer",
    "ERC20Token",
    "TokenCustody",
    "TokenError",
    "ZERO_ADDRESS",
]
