"""
Wallet Pool Manager
Generates subsidiary wallets and persists them through the ledger
"""

from typing import List

import base58
from solders.keypair import Keypair

from bundler.core.errors import GenerationError
from bundler.core.ledger import LedgerStore
from bundler.core.logger import get_logger
from bundler.core.models import WalletRecord


logger = get_logger(__name__)


def keypair_from_secret(private_key: str) -> Keypair:
    """Rebuild a keypair from a base58 encoded 64-byte secret key"""
    return Keypair.from_bytes(base58.b58decode(private_key))


def generate_keypair() -> WalletRecord:
    """Create one wallet from the OS random source"""
    keypair = Keypair()
    return WalletRecord(
        private_key=base58.b58encode(bytes(keypair)).decode("ascii"),
        public_key=str(keypair.pubkey())
    )


def generate_pool(count: int) -> List[WalletRecord]:
    """
    Create `count` fresh wallets

    Raises:
        ValueError: If count is not a positive integer
        GenerationError: If the random source or key construction fails
    """
    if not isinstance(count, int) or isinstance(count, bool) or count <= 0:
        raise ValueError(f"wallet count must be a positive integer, got {count!r}")

    try:
        return [generate_keypair() for _ in range(count)]
    except Exception as e:
        raise GenerationError(f"Keypair generation failed: {e}") from e


class WalletPoolManager:
    """Creates wallet pools and replaces the persisted one"""

    def __init__(self, ledger: LedgerStore):
        self.ledger = ledger

    def create_pool(self, count: int) -> List[WalletRecord]:
        """
        Generate a new pool, overwrite the persisted one and clear the checkpoint

        The previous pool is backed up by the ledger; funds left in it are
        only reachable through that backup.
        """
        wallets = generate_pool(count)
        backup = self.ledger.save_wallets(wallets)
        self.ledger.clear_checkpoint()

        logger.info(
            "wallet_pool_generated",
            count=len(wallets),
            path=str(self.ledger.wallets_file),
            previous_pool_backup=str(backup) if backup else None
        )
        return wallets
