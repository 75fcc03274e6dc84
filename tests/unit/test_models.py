"""
Unit tests for the data model (bundler/core/models.py)
"""

from decimal import Decimal

import pytest

from bundler.core.models import (
    BuyRunResult,
    PausedWalletRecord,
    RunState,
    SellRunResult,
    WalletRecord,
    build_checkpoint,
    lamports_to_sol,
    sol_to_lamports,
)


class TestConversions:

    def test_sol_to_lamports_drops_remainder(self):
        assert sol_to_lamports(Decimal("0.0000000019")) == 1
        assert sol_to_lamports(Decimal("1")) == 1_000_000_000

    def test_lamports_to_sol(self):
        assert lamports_to_sol(2_500_000) == Decimal("0.0025")


class TestRecords:

    def test_repr_hides_secret(self):
        wallet = WalletRecord(private_key="secret123", public_key="pub456")

        assert "secret123" not in repr(wallet)
        assert "pub456" in repr(wallet)

    def test_records_are_immutable(self):
        wallet = WalletRecord(private_key="a", public_key="b")

        with pytest.raises(AttributeError):
            wallet.public_key = "c"

    def test_paused_record_round_trip(self):
        record = PausedWalletRecord(private_key="a", public_key="b", amount=Decimal("0.004321"))

        restored = PausedWalletRecord.from_dict(record.to_dict())

        assert restored == record
        assert restored.to_wallet() == WalletRecord(private_key="a", public_key="b")

    def test_build_checkpoint_pairs_tail(self):
        wallets = [WalletRecord(private_key=f"k{i}", public_key=f"p{i}") for i in range(4)]
        amounts = [Decimal(i) for i in range(4)]

        checkpoint = build_checkpoint(wallets, amounts, 1)

        assert [(r.public_key, r.amount) for r in checkpoint] == [
            ("p1", Decimal(1)), ("p2", Decimal(2)), ("p3", Decimal(3))
        ]


class TestResults:

    def test_buy_result_to_dict(self):
        checkpoint = (PausedWalletRecord(private_key="s3cr3t", public_key="p", amount=Decimal("0.1")),)
        result = BuyRunResult(state=RunState.PAUSED, processed=2, checkpoint=checkpoint)

        data = result.to_dict()

        assert data["state"] == "paused"
        assert data["paused_wallets"] == ["p"]
        assert "s3cr3t" not in str(data)

    def test_sell_result_succeeded(self):
        result = SellRunResult()
        assert result.succeeded

        result.errors.append(("wallet", "boom"))
        assert not result.succeeded
        assert result.to_dict()["errors"] == [{"wallet": "wallet", "error": "boom"}]
