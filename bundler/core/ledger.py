"""
Ledger Store
Persists the wallet pool and the paused-run checkpoint as JSON files

Both files are process-wide singletons with no locking: only one bundler
run may use a given pair of files at a time.
"""

import json
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional

from bundler.core.logger import get_logger
from bundler.core.models import Checkpoint, PausedWalletRecord, WalletRecord


logger = get_logger(__name__)


class LedgerStore:
    """
    Owns the on-disk wallet list and checkpoint

    Reads fail soft (a missing or unreadable file reads as empty). Writes
    fail hard: losing freshly generated keys or a pause checkpoint must not
    go unnoticed.
    """

    def __init__(self, wallets_file: str, checkpoint_file: str):
        self.wallets_file = Path(wallets_file)
        self.checkpoint_file = Path(checkpoint_file)

    # ------------------------------------------------------------------
    # Wallet pool
    # ------------------------------------------------------------------

    def load_wallets(self) -> List[WalletRecord]:
        """Read the wallet pool in its persisted order"""
        data = self._read_list(self.wallets_file)
        try:
            return [WalletRecord.from_dict(item) for item in data]
        except (KeyError, TypeError) as e:
            logger.error("wallets_file_malformed", path=str(self.wallets_file), error=str(e))
            return []

    def save_wallets(self, wallets: Iterable[WalletRecord]) -> Optional[Path]:
        """
        Overwrite the wallet pool

        A non-empty existing pool is copied to a timestamped backup first.

        Returns:
            Path of the backup, if one was written
        """
        backup = self._backup_wallets()
        records = [wallet.to_dict() for wallet in wallets]
        self._write_list(self.wallets_file, records)

        logger.info("wallets_saved", path=str(self.wallets_file), count=len(records))
        return backup

    def _backup_wallets(self) -> Optional[Path]:
        if not self.wallets_file.exists():
            return None
        # Raw content decides, not parsed records: a partly malformed pool still holds keys
        if self.wallets_file.read_text(encoding='utf-8', errors='replace').strip() in ("", "[]"):
            return None

        stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
        backup = self.wallets_file.with_name(f"{self.wallets_file.name}.{stamp}.bak")
        shutil.copy2(self.wallets_file, backup)
        os.chmod(backup, 0o600)

        logger.warning(
            "wallet_pool_replaced",
            replaced_bytes=self.wallets_file.stat().st_size,
            backup=str(backup)
        )
        return backup

    # ------------------------------------------------------------------
    # Checkpoint
    # ------------------------------------------------------------------

    def load_checkpoint(self) -> Checkpoint:
        """Read the paused-run tail; empty means nothing to resume"""
        data = self._read_list(self.checkpoint_file)
        try:
            return tuple(PausedWalletRecord.from_dict(item) for item in data)
        except (KeyError, TypeError, ArithmeticError) as e:
            logger.error("checkpoint_file_malformed", path=str(self.checkpoint_file), error=str(e))
            return ()

    def save_checkpoint(self, checkpoint: Checkpoint) -> None:
        """Overwrite the checkpoint with the given tail"""
        self._write_list(self.checkpoint_file, [record.to_dict() for record in checkpoint])
        logger.info(
            "checkpoint_saved",
            path=str(self.checkpoint_file),
            wallets=len(checkpoint)
        )

    def clear_checkpoint(self) -> None:
        self._write_list(self.checkpoint_file, [])
        logger.debug("checkpoint_cleared", path=str(self.checkpoint_file))

    # ------------------------------------------------------------------
    # File helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _read_list(path: Path) -> list:
        if not path.exists():
            return []

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("ledger_read_failed", path=str(path), error=str(e))
            return []

        if not isinstance(data, list):
            logger.error("ledger_not_a_list", path=str(path))
            return []

        return data

    @staticmethod
    def _write_list(path: Path, records: list) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)

        # Write to a sibling file then rename so a crash never leaves half a ledger
        tmp_path = path.with_name(path.name + ".tmp")
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(records, f, indent=2)
        os.chmod(tmp_path, 0o600)
        os.replace(tmp_path, path)
