"""
MintClient abstraction layer for mint protocol backends.

Defines the interface the wallet uses for every cryptographic token
operation (issuance, swaps, melts, state checks). The wallet never performs
these operations itself; it persists whatever the client returns.
"""

from abc import ABC, abstractmethod
from typing import List

from app.models.mint_protocol import (
    MeltQuoteInfo,
    MeltResult,
    MintQuoteInfo,
    ProofStateInfo,
    SplitResult,
)
from ledger_engine.models import Proof


class MintClient(ABC):
    """
    Abstract base class for mint protocol clients.

    Implementations:
    - MockMintClient: In-process simulated mint for development and tests
    - Remote clients: injected by the host application via set_mint_client()

    Implementations raise ProtocolError (or any exception, which the wallet
    wraps into ProtocolError) when the mint rejects a request.
    """

    @property
    @abstractmethod
    def mint_url(self) -> str:
        """Base URL of the mint this client talks to."""
        pass

    @abstractmethod
    async def load_mint(self) -> None:
        """
        Establish the connection and load keysets.

        Called once, before the first operation.
        """
        pass

    @abstractmethod
    async def create_mint_quote(self, amount: int) -> MintQuoteInfo:
        """
        Request an invoice that, once paid, allows minting ``amount``.

        Returns:
            MintQuoteInfo: Quote ID, payment request and expiry
        """
        pass

    @abstractmethod
    async def check_mint_quote(self, quote_id: str) -> MintQuoteInfo:
        """Fetch the current state (UNPAID, PAID, ISSUED) of a mint quote."""
        pass

    @abstractmethod
    async def mint_proofs(self, amount: int, quote_id: str) -> List[Proof]:
        """
        Request issuance for a paid quote.

        Returns:
            list[Proof]: Newly issued proofs summing to ``amount``
        """
        pass

    @abstractmethod
    async def send(
        self, amount: int, proofs: List[Proof], include_fees: bool = True
    ) -> SplitResult:
        """
        Swap ``proofs`` into a set worth ``amount`` to send and the remainder.

        All input proofs are consumed by the swap. The value of
        ``keep + send`` equals the inputs minus the swap fee.

        Args:
            amount: Amount the send set must be worth
            proofs: Input proofs to swap
            include_fees: Make the send set cover the recipient's redeem fee
        """
        pass

    @abstractmethod
    async def receive(self, token: str) -> List[Proof]:
        """Redeem a token string into fresh proofs owned by this wallet."""
        pass

    @abstractmethod
    async def create_melt_quote(self, invoice: str) -> MeltQuoteInfo:
        """Quote the amount and fee reserve needed to pay ``invoice``."""
        pass

    @abstractmethod
    async def melt_proofs(
        self, melt_quote: MeltQuoteInfo, proofs: List[Proof]
    ) -> MeltResult:
        """
        Spend ``proofs`` to pay the invoice behind ``melt_quote``.

        Returns:
            MeltResult: Settlement state, change proofs and payment preimage
        """
        pass

    @abstractmethod
    async def check_melt_quote(self, quote_id: str) -> MeltQuoteInfo:
        """Fetch the settlement state of a melt quote."""
        pass

    @abstractmethod
    async def check_proofs_states(self, proofs: List[Proof]) -> List[ProofStateInfo]:
        """Report whether each proof has been redeemed at the mint."""
        pass

    def fee_for_inputs(self, proofs: List[Proof]) -> int:
        """
        Fee the mint charges to spend ``proofs`` as swap or melt inputs.

        Defaults to zero for mints without input fees.
        """
        return 0

    def receive_fee(self, amount: int) -> int:
        """
        Fee a recipient pays to redeem a send set worth ``amount``.

        Added to the send set when ``send`` is called with include_fees.
        """
        return 0
