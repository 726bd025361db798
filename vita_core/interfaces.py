"""
vita_core.interfaces
--------------------
Contracts for collaborators owned by the surrounding system.

The core only calls these; ledger account layout, oracle sourcing and wallet
custody live elsewhere.
"""

from __future__ import annotations
from typing import Any, Dict


class IdentityProvider:
    @property
    def public_key(self) -> str:
        raise NotImplementedError

    def sign(self, payload: bytes) -> bytes:
        raise NotImplementedError


class LedgerProgram:
    async def submit(self, instruction: Dict[str, Any]) -> str:
        """Submit an instruction, returning the transaction signature."""
        raise NotImplementedError

    def derive_address(self, owner: str, collateral_type: str) -> str:
        """Deterministic position address for (owner, collateral_type)."""
        raise NotImplementedError


class OracleClient:
    async def current_price(self, asset: str) -> int:
        """Fixed-point price; decimals are defined by the asset."""
        raise NotImplementedError
