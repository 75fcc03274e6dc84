"""
Unit tests for the Chain Gateway (bundler/clients/chain_gateway.py)

RPC responses are canned per JSON-RPC method; transactions are really
built and signed with solders.
"""

import base64
from decimal import Decimal

import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction

from bundler.clients.chain_gateway import ChainGateway
from bundler.core.config import TransactionConfig
from bundler.core.errors import TransferError
from bundler.core.rpc_manager import RPCError
from bundler.core.wallet_pool import generate_keypair


MINT = "So11111111111111111111111111111111111111112"


class FakeRPC:
    """Answers call_http_rpc from a dict of method -> response (or callable)"""

    def __init__(self, responses):
        self.responses = responses
        self.calls = []

    async def call_http_rpc(self, method, params, timeout=None):
        self.calls.append((method, params))
        response = self.responses[method]
        if callable(response):
            response = response(params)
        if isinstance(response, Exception):
            raise response
        return response

    def sent_transactions(self):
        return [
            VersionedTransaction.from_bytes(base64.b64decode(params[0]))
            for method, params in self.calls if method == "sendTransaction"
        ]


def transfer_responses(**overrides):
    responses = {
        "getLatestBlockhash": {"result": {"value": {"blockhash": str(Hash.default()), "lastValidBlockHeight": 1}}},
        "sendTransaction": {"result": "sig"},
        "getSignatureStatuses": {"result": {"value": [{"confirmationStatus": "confirmed", "err": None}]}},
    }
    responses.update(overrides)
    return responses


@pytest.fixture
def tx_config():
    return TransactionConfig(
        max_retries=3,
        retry_delay_ms=0,
        confirmation_timeout_s=0.05,
        confirmation_poll_interval_s=0
    )


@pytest.fixture
def sender():
    return generate_keypair()


class TestLookups:

    @pytest.mark.asyncio
    async def test_get_balance(self, tx_config):
        rpc = FakeRPC({"getBalance": {"result": {"context": {"slot": 1}, "value": 1_500_000_000}}})

        balance = await ChainGateway(rpc, tx_config).get_balance("addr")

        assert balance == Decimal("1.5")

    @pytest.mark.asyncio
    async def test_get_balance_fails_soft(self, tx_config):
        rpc = FakeRPC({"getBalance": RPCError("all endpoints down")})

        assert await ChainGateway(rpc, tx_config).get_balance("addr") == Decimal("0")

    @pytest.mark.asyncio
    async def test_get_token_balance(self, tx_config):
        rpc = FakeRPC({"getTokenAccountsByOwner": {"result": {"value": [{
            "pubkey": "ata",
            "account": {"data": {"parsed": {"info": {"tokenAmount": {
                "amount": "123450000", "decimals": 6, "uiAmount": 123.45, "uiAmountString": "123.45"
            }}}}}
        }]}}})

        balance = await ChainGateway(rpc, tx_config).get_token_balance("owner", MINT)

        assert balance == Decimal("123.45")
        assert rpc.calls[0][1][1] == {"mint": MINT}

    @pytest.mark.asyncio
    async def test_get_token_balance_without_account(self, tx_config):
        rpc = FakeRPC({"getTokenAccountsByOwner": {"result": {"value": []}}})

        assert await ChainGateway(rpc, tx_config).get_token_balance("owner", MINT) == Decimal("0")

    @pytest.mark.asyncio
    async def test_get_token_balance_fails_soft(self, tx_config):
        rpc = FakeRPC({"getTokenAccountsByOwner": {"result": {"value": [{"account": "garbage"}]}}})

        assert await ChainGateway(rpc, tx_config).get_token_balance("owner", MINT) == Decimal("0")

    @pytest.mark.asyncio
    async def test_latest_mint_signature(self, tx_config):
        rpc = FakeRPC({"getSignaturesForAddress": {"result": [{"signature": "latest", "slot": 9}]}})

        assert await ChainGateway(rpc, tx_config).get_latest_mint_signature(MINT) == "latest"
        assert rpc.calls[0][1][1]["limit"] == 1

    @pytest.mark.asyncio
    async def test_latest_mint_signature_fails_soft(self, tx_config):
        rpc = FakeRPC({"getSignaturesForAddress": RPCError("down")})

        assert await ChainGateway(rpc, tx_config).get_latest_mint_signature(MINT) is None

    @pytest.mark.asyncio
    async def test_token_decimals_default(self, tx_config):
        rpc = FakeRPC({"getAccountInfo": {"result": {"value": None}}})

        assert await ChainGateway(rpc, tx_config).get_token_decimals(MINT) == 6


class TestTransferNative:

    @pytest.mark.asyncio
    async def test_signed_and_confirmed(self, tx_config, sender):
        rpc = FakeRPC(transfer_responses())
        recipient = str(Keypair().pubkey())

        signature = await ChainGateway(rpc, tx_config).transfer_native(
            sender.private_key, recipient, Decimal("0.25")
        )

        sent = rpc.sent_transactions()
        assert len(sent) == 1
        assert signature == str(sent[0].signatures[0])
        assert str(sent[0].message.account_keys[0]) == sender.public_key
        assert recipient in [str(key) for key in sent[0].message.account_keys]

    @pytest.mark.asyncio
    async def test_rejects_zero_amount(self, tx_config, sender):
        rpc = FakeRPC(transfer_responses())

        with pytest.raises(ValueError):
            await ChainGateway(rpc, tx_config).transfer_native(
                sender.private_key, str(Keypair().pubkey()), Decimal("0")
            )

        assert rpc.calls == []

    @pytest.mark.asyncio
    async def test_submission_retried_then_fails(self, tx_config, sender):
        rpc = FakeRPC(transfer_responses(sendTransaction=RPCError("node busy")))

        with pytest.raises(TransferError, match="after 3 attempts"):
            await ChainGateway(rpc, tx_config).transfer_native(
                sender.private_key, str(Keypair().pubkey()), Decimal("0.1")
            )

        assert [m for m, _ in rpc.calls].count("sendTransaction") == 3

    @pytest.mark.asyncio
    async def test_on_chain_error(self, tx_config, sender):
        rpc = FakeRPC(transfer_responses(getSignatureStatuses={
            "result": {"value": [{"confirmationStatus": "processed", "err": {"InstructionError": [0, "Custom"]}}]}
        }))

        with pytest.raises(TransferError, match="failed"):
            await ChainGateway(rpc, tx_config).transfer_native(
                sender.private_key, str(Keypair().pubkey()), Decimal("0.1")
            )

    @pytest.mark.asyncio
    async def test_confirmation_timeout(self, tx_config, sender):
        rpc = FakeRPC(transfer_responses(getSignatureStatuses={"result": {"value": [None]}}))

        with pytest.raises(TransferError, match="not confirmed"):
            await ChainGateway(rpc, tx_config).transfer_native(
                sender.private_key, str(Keypair().pubkey()), Decimal("0.1")
            )

    @pytest.mark.asyncio
    async def test_missing_blockhash(self, tx_config, sender):
        rpc = FakeRPC(transfer_responses(getLatestBlockhash={"result": {"value": {}}}))

        with pytest.raises(TransferError, match="blockhash"):
            await ChainGateway(rpc, tx_config).transfer_native(
                sender.private_key, str(Keypair().pubkey()), Decimal("0.1")
            )


class TestTransferToken:

    def account_info(self, destination_exists):
        def respond(params):
            if params[1]["encoding"] == "jsonParsed":
                return {"result": {"value": {"data": {"parsed": {"info": {"decimals": 6}}}}}}
            return {"result": {"value": {"lamports": 2039280} if destination_exists else None}}
        return respond

    @pytest.mark.asyncio
    async def test_creates_missing_token_account(self, tx_config, sender):
        rpc = FakeRPC(transfer_responses(getAccountInfo=self.account_info(False)))

        await ChainGateway(rpc, tx_config).transfer_token(
            sender.private_key, str(Keypair().pubkey()), MINT, Decimal("12.5")
        )

        sent = rpc.sent_transactions()
        assert len(sent[0].message.instructions) == 2

    @pytest.mark.asyncio
    async def test_existing_token_account(self, tx_config, sender):
        rpc = FakeRPC(transfer_responses(getAccountInfo=self.account_info(True)))

        await ChainGateway(rpc, tx_config).transfer_token(
            sender.private_key, str(Keypair().pubkey()), MINT, Decimal("12.5")
        )

        sent = rpc.sent_transactions()
        assert len(sent[0].message.instructions) == 1

    @pytest.mark.asyncio
    async def test_dust_amount_rejected(self, tx_config, sender):
        rpc = FakeRPC(transfer_responses(getAccountInfo=self.account_info(True)))

        with pytest.raises(ValueError):
            await ChainGateway(rpc, tx_config).transfer_token(
                sender.private_key, str(Keypair().pubkey()), MINT, Decimal("0.0000001")
            )

    @pytest.mark.asyncio
    async def test_rpc_failure_wrapped(self, tx_config, sender):
        rpc = FakeRPC(transfer_responses(
            getAccountInfo=lambda params: RPCError("down") if params[1]["encoding"] == "base64"
            else {"result": {"value": None}}
        ))

        with pytest.raises(TransferError, match="down"):
            await ChainGateway(rpc, tx_config).transfer_token(
                sender.private_key, str(Keypair().pubkey()), MINT, Decimal("1")
            )
