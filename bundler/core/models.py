"""
Data model shared by the ledger, gateways and orchestrators
"""

from dataclasses import dataclass, field
from decimal import ROUND_DOWN, Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


LAMPORTS_PER_SOL = 1_000_000_000
LAMPORT = Decimal(1) / Decimal(LAMPORTS_PER_SOL)


def sol_to_lamports(amount: Decimal) -> int:
    """Convert SOL to lamports, dropping any sub-lamport remainder"""
    return int((Decimal(amount) * LAMPORTS_PER_SOL).to_integral_value(rounding=ROUND_DOWN))


def lamports_to_sol(lamports: int) -> Decimal:
    return (Decimal(lamports) / LAMPORTS_PER_SOL).quantize(LAMPORT)


@dataclass(frozen=True)
class WalletRecord:
    """One subsidiary wallet of the pool"""
    private_key: str
    public_key: str

    def to_dict(self) -> Dict[str, Any]:
        return {"privateKey": self.private_key, "publicKey": self.public_key}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WalletRecord":
        return cls(private_key=data["privateKey"], public_key=data["publicKey"])

    def __repr__(self) -> str:
        return f"WalletRecord(public_key={self.public_key!r})"


@dataclass(frozen=True)
class PausedWalletRecord(WalletRecord):
    """A wallet left unprocessed by a paused buy run, with its planned amount"""
    amount: Decimal = Decimal("0")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        # Lamport-rounded amounts survive a float round trip exactly
        data["amount"] = float(self.amount)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PausedWalletRecord":
        return cls(
            private_key=data["privateKey"],
            public_key=data["publicKey"],
            amount=Decimal(str(data["amount"]))
        )

    @classmethod
    def from_wallet(cls, wallet: WalletRecord, amount: Decimal) -> "PausedWalletRecord":
        return cls(private_key=wallet.private_key, public_key=wallet.public_key, amount=amount)

    def to_wallet(self) -> WalletRecord:
        return WalletRecord(private_key=self.private_key, public_key=self.public_key)

    def __repr__(self) -> str:
        return f"PausedWalletRecord(public_key={self.public_key!r}, amount={self.amount})"


Checkpoint = Tuple[PausedWalletRecord, ...]
AmountPlan = List[Decimal]


def build_checkpoint(
    wallets: List[WalletRecord],
    amounts: AmountPlan,
    start_index: int
) -> Checkpoint:
    """Pair every wallet from start_index onwards with its planned amount"""
    return tuple(
        PausedWalletRecord.from_wallet(wallet, amount)
        for wallet, amount in zip(wallets[start_index:], amounts[start_index:])
    )


class RunState(Enum):
    """Buy run lifecycle"""
    FUNDING = "funding"
    TRADING = "trading"
    COMPLETED = "completed"
    PAUSED = "paused"
    ABORTED = "aborted"


@dataclass
class BuyRunResult:
    """Outcome of one buy orchestrator run"""
    state: RunState
    processed: int = 0
    skipped: int = 0
    last_signature: str = ""
    checkpoint: Checkpoint = ()
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "processed": self.processed,
            "skipped": self.skipped,
            "last_signature": self.last_signature,
            "paused_wallets": [w.public_key for w in self.checkpoint],
            "error": self.error
        }


@dataclass
class SellRunResult:
    """Outcome of one sell orchestrator run"""
    consolidated: int = 0
    token_transfers: int = 0
    sol_transfers: int = 0
    sell_signature: Optional[str] = None
    swept_sol: Decimal = Decimal("0")
    errors: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "consolidated": self.consolidated,
            "token_transfers": self.token_transfers,
            "sol_transfers": self.sol_transfers,
            "sell_signature": self.sell_signature,
            "swept_sol": str(self.swept_sol),
            "errors": [{"wallet": w, "error": e} for w, e in self.errors]
        }
