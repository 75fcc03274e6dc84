"""
Exception taxonomy for the bundler

Soft lookups (balances, latest signature) never raise; they return zero/empty.
Everything that moves funds raises one of these.
"""


class BundlerError(Exception):
    """Base class for all bundler errors"""


class GenerationError(BundlerError):
    """Keypair generation failed"""


class TransferError(BundlerError):
    """A SOL or token transfer was not sent or not confirmed"""


class FundingError(BundlerError):
    """Funding a pool wallet from the main wallet failed"""


class TradeGatewayError(BundlerError):
    """The trade API could not be reached or rejected the request"""


class InsufficientBalanceError(BundlerError):
    """Main wallet cannot cover the planned spend"""

    def __init__(self, required, available):
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient balance in the main wallet: need {required} SOL, have {available} SOL"
        )


class NoWalletsError(BundlerError):
    """No wallet pool has been generated yet"""


class InvalidInputError(BundlerError):
    """Operator input failed validation"""
