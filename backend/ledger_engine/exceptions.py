"""Exception hierarchy for ledger and wallet operations."""

from typing import Any


class WalletError(Exception):
    """Base exception for wallet errors."""

    def __init__(self, message: str, status_code: int = 500, details: Any = None):
        self.message = message
        self.status_code = status_code
        self.details = details
        super().__init__(message)


class WalletValidationError(WalletError):
    """Bad or missing caller input."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message=message, status_code=400, details=details)


class MissingParameterError(WalletValidationError):
    """Raised when a required argument is empty or absent."""

    pass


class InvalidAmountError(WalletValidationError):
    """Raised when an amount is not a positive integer."""

    def __init__(self, amount: Any):
        super().__init__(
            message="Invalid amount. Please provide a positive number.",
            details={"amount": amount},
        )


class InvalidTokenError(WalletValidationError):
    """Raised when a token string cannot be decoded."""

    pass


class UnknownMintError(WalletValidationError):
    """Raised when an operation targets a mint the wallet is not bound to."""

    def __init__(self, mint_url: str):
        super().__init__(
            message=f"Unknown mint: {mint_url}",
            details={"mint_url": mint_url},
        )


class QuoteAlreadyIssuedError(WalletValidationError):
    """Raised when proofs were already minted for a quote."""

    def __init__(self, quote_id: str):
        super().__init__(
            message=f"Quote {quote_id} has already been issued",
            details={"quote_id": quote_id},
        )


class ProtocolError(WalletError):
    """Remote mint rejected the request or could not be reached."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message=message, status_code=502, details=details)


class EmptyResultError(WalletError):
    """Mint answered successfully but returned no proofs."""

    def __init__(self, message: str, details: Any = None):
        super().__init__(message=message, status_code=502, details=details)


class InsufficientBalanceError(WalletError):
    """Ready proofs do not cover the requested amount."""

    def __init__(self, available: int, required: int):
        super().__init__(
            message=(
                f"Insufficient balance. You have {available} sats, "
                f"but need {required} sats."
            ),
            status_code=400,
            details={"available": available, "required": required},
        )


class StorageCorruptionError(WalletError):
    """Ledger file could not be read."""

    def __init__(self, path: str, reason: str):
        super().__init__(
            message=f"Ledger storage unreadable: {reason}",
            status_code=500,
            details={"path": path, "reason": reason},
        )


class MintUnavailableError(WalletError):
    """No mint client is configured for the wallet."""

    def __init__(self, message: str):
        super().__init__(message=message, status_code=503)
