"""
Unit tests for Ledger Store (bundler/core/ledger.py)

Tests:
- Wallet pool persistence and backup
- Checkpoint round-trip
- Clearing idempotence
- Soft reads of missing/corrupt files
"""

import json
import os
import stat
from decimal import Decimal

import pytest

from bundler.core.models import PausedWalletRecord, build_checkpoint


def mode_of(path):
    return stat.S_IMODE(os.stat(path).st_mode)


class TestWalletPool:
    """Test wallet list persistence"""

    def test_missing_file_reads_empty(self, ledger):
        assert ledger.load_wallets() == []

    def test_save_and_load_preserves_order(self, ledger, pool_wallets):
        ledger.save_wallets(pool_wallets)

        assert ledger.load_wallets() == pool_wallets

    def test_on_disk_format(self, ledger, pool_wallets):
        ledger.save_wallets(pool_wallets[:1])

        with open(ledger.wallets_file) as f:
            data = json.load(f)

        assert data == [{
            "privateKey": pool_wallets[0].private_key,
            "publicKey": pool_wallets[0].public_key
        }]

    def test_file_is_owner_only(self, ledger, pool_wallets):
        ledger.save_wallets(pool_wallets)

        assert mode_of(ledger.wallets_file) == 0o600

    def test_first_save_has_no_backup(self, ledger, pool_wallets):
        assert ledger.save_wallets(pool_wallets) is None

    def test_overwrite_backs_up_previous_pool(self, ledger, pool_wallets):
        ledger.save_wallets(pool_wallets[:2])

        backup = ledger.save_wallets(pool_wallets[2:])

        assert backup is not None
        assert backup.exists()
        with open(backup) as f:
            assert [w["publicKey"] for w in json.load(f)] == [
                w.public_key for w in pool_wallets[:2]
            ]
        assert ledger.load_wallets() == pool_wallets[2:]

    def test_partly_malformed_pool_is_backed_up(self, ledger, pool_wallets):
        """One bad record hides the pool from load_wallets but its keys still get a backup"""
        ledger.save_wallets(pool_wallets)
        with open(ledger.wallets_file) as f:
            data = json.load(f)
        data.append({"publicKey": "only-public"})
        ledger.wallets_file.write_text(json.dumps(data))
        assert ledger.load_wallets() == []

        backup = ledger.save_wallets(pool_wallets[:1])

        assert backup is not None
        with open(backup) as f:
            saved = json.load(f)
        assert [w["privateKey"] for w in saved[:5]] == [w.private_key for w in pool_wallets]
        assert mode_of(backup) == 0o600

    def test_unparseable_pool_is_backed_up(self, ledger, pool_wallets):
        ledger.wallets_file.parent.mkdir(parents=True, exist_ok=True)
        ledger.wallets_file.write_text("{not json")

        backup = ledger.save_wallets(pool_wallets[:1])

        assert backup is not None
        assert backup.read_text() == "{not json"

    def test_empty_pool_file_has_no_backup(self, ledger, pool_wallets):
        ledger.save_wallets([])

        assert ledger.save_wallets(pool_wallets) is None
        assert list(ledger.wallets_file.parent.glob("*.bak")) == []

    def test_corrupt_file_reads_empty(self, ledger):
        ledger.wallets_file.parent.mkdir(parents=True, exist_ok=True)
        ledger.wallets_file.write_text("{not json")

        assert ledger.load_wallets() == []

    def test_non_list_file_reads_empty(self, ledger):
        ledger.wallets_file.parent.mkdir(parents=True, exist_ok=True)
        ledger.wallets_file.write_text('{"privateKey": "x"}')

        assert ledger.load_wallets() == []


class TestCheckpoint:
    """Test paused-run checkpoint persistence"""

    def test_round_trip(self, ledger, pool_wallets):
        amounts = [Decimal("0.002"), Decimal("0.003145926"), Decimal("0.004"),
                   Decimal("0.005"), Decimal("0.0025")]
        checkpoint = build_checkpoint(pool_wallets, amounts, 2)

        ledger.save_checkpoint(checkpoint)
        loaded = ledger.load_checkpoint()

        assert loaded == checkpoint
        assert [r.public_key for r in loaded] == [w.public_key for w in pool_wallets[2:]]
        assert [r.amount for r in loaded] == amounts[2:]

    def test_on_disk_format(self, ledger, pool_wallets):
        record = PausedWalletRecord.from_wallet(pool_wallets[0], Decimal("0.003"))
        ledger.save_checkpoint((record,))

        with open(ledger.checkpoint_file) as f:
            data = json.load(f)

        assert data == [{
            "privateKey": pool_wallets[0].private_key,
            "publicKey": pool_wallets[0].public_key,
            "amount": 0.003
        }]

    def test_clear_is_idempotent(self, ledger, pool_wallets):
        ledger.save_checkpoint(build_checkpoint(pool_wallets, [Decimal("0.002")] * 5, 0))

        ledger.clear_checkpoint()
        assert ledger.load_checkpoint() == ()

        ledger.clear_checkpoint()
        assert ledger.load_checkpoint() == ()

    def test_missing_checkpoint_is_empty(self, ledger):
        assert ledger.load_checkpoint() == ()

    def test_malformed_record_reads_empty(self, ledger):
        ledger.checkpoint_file.parent.mkdir(parents=True, exist_ok=True)
        ledger.checkpoint_file.write_text('[{"publicKey": "only"}]')

        assert ledger.load_checkpoint() == ()

    def test_write_failure_raises(self, ledger, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("file, not a directory")
        ledger.checkpoint_file = blocker / "paused.json"

        with pytest.raises(OSError):
            ledger.clear_checkpoint()
