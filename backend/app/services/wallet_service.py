"""
Wallet Service

Orchestrates every wallet operation: validates input, calls the mint
through a MintClient, then commits the outcome to the ledger in one
transaction. The ledger never changes when the mint call fails, except for
pay_invoice, which records a completed swap before surfacing a failed melt.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple, TypeVar

from app.models.mint_protocol import MeltQuoteState, ProofSpendState, SplitResult
from app.models.wallet_responses import (
    BalanceResponse,
    CleanPendingProofsResponse,
    InfoResponse,
    LUD06InfoResponse,
    MintEcashResponse,
    MintProofsResponse,
    MintQuoteResponse,
    MintQuoteStatusResponse,
    PayInvoiceResponse,
    QuotePoolStatus,
    ReceiveEcashResponse,
    SendEcashResponse,
)
from ledger_engine import (
    EmptyResultError,
    InsufficientBalanceError,
    InvalidAmountError,
    LedgerDatabase,
    MintQuote,
    MintQuoteState,
    MintUnavailableError,
    MissingParameterError,
    Proof,
    ProofState,
    ProofStore,
    ProtocolError,
    QuoteAlreadyIssuedError,
    QuoteStore,
    StoredProof,
    UnknownMintError,
    WalletError,
    sum_proofs,
)

from .mint_client import MintClient
from .quote_monitor import QuoteMonitor
from .token_codec import decode_token, encode_token

logger = logging.getLogger(__name__)

T = TypeVar("T")


class WalletService:
    """
    Custodial wallet bound to a single mint.

    The mint client is created on first use and reused for the lifetime of
    the service. Spending operations (send, pay) are serialized so two
    callers never select the same ready proofs.
    """

    def __init__(
        self,
        mint_url: str,
        wallet_db_path: str,
        mint_client_factory: Callable[[], MintClient],
        unit: str = "sat",
        quote_check_interval: float = 5.0,
        max_concurrent_checks: int = 5,
        melt_confirm_attempts: int = 1,
        melt_confirm_interval: float = 3.0,
        mint_poll_attempts: int = 60,
        mint_poll_interval: float = 5.0,
        lud06: Optional[LUD06InfoResponse] = None,
    ):
        """
        Initialize WalletService.

        Args:
            mint_url: Mint the wallet is bound to
            wallet_db_path: SQLite ledger path (":memory:" for a throwaway ledger)
            mint_client_factory: Returns the MintClient, called once on first use
            unit: Unit for quotes and tokens
            quote_check_interval: Seconds between quote monitor ticks
            max_concurrent_checks: Quotes checked per monitor tick
            melt_confirm_attempts: Settlement re-checks after a melt
            melt_confirm_interval: Delay before each settlement re-check
            mint_poll_attempts: Payment polls in mint_ecash
            mint_poll_interval: Delay between payment polls in mint_ecash
            lud06: LNURL-pay descriptor returned by get_lud06_info
        """
        self.mint_url = mint_url.rstrip("/")
        self.wallet_db_path = wallet_db_path
        self.unit = unit
        self.melt_confirm_attempts = melt_confirm_attempts
        self.melt_confirm_interval = melt_confirm_interval
        self.mint_poll_attempts = mint_poll_attempts
        self.mint_poll_interval = mint_poll_interval
        self.lud06 = lud06

        self.db = LedgerDatabase(wallet_db_path)
        self.proofs = ProofStore(self.db)
        self.quotes = QuoteStore(self.db)
        self.quote_monitor = QuoteMonitor(
            self,
            check_interval_seconds=quote_check_interval,
            max_concurrent_checks=max_concurrent_checks,
        )

        self._client_factory = mint_client_factory
        self._client: Optional[MintClient] = None
        self._client_lock = asyncio.Lock()
        self._spend_lock = asyncio.Lock()

        logger.info(f"WalletService initialized: mint={self.mint_url}, ledger={wallet_db_path}")

    # ---------- mint access ----------

    async def _get_client(self) -> MintClient:
        if self._client is not None:
            return self._client

        async with self._client_lock:
            if self._client is None:
                try:
                    client = self._client_factory()
                except NotImplementedError as e:
                    raise MintUnavailableError(str(e)) from e

                await self._call_mint("loading mint", client.load_mint())
                self._client = client
                logger.info(f"Connected to mint {self.mint_url}")

        return self._client

    async def _call_mint(self, action: str, call: Awaitable[T]) -> T:
        """Await a mint call, reporting any non-wallet failure as ProtocolError."""
        try:
            return await call
        except WalletError:
            raise
        except Exception as e:
            logger.error(f"Mint request failed while {action}: {e}")
            raise ProtocolError(f"Error {action}: {e}") from e

    # ---------- validation ----------

    @staticmethod
    def _validate_amount(amount) -> int:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount <= 0:
            raise InvalidAmountError(amount)
        return amount

    def _resolve_mint(self, mint_url: Optional[str]) -> str:
        if not mint_url:
            return self.mint_url
        if mint_url.rstrip("/") != self.mint_url:
            raise UnknownMintError(mint_url)
        return self.mint_url

    # ---------- ledger helpers ----------

    def _select_proofs(
        self, client: MintClient, ready: Sequence[StoredProof], amount: int
    ) -> Tuple[List[StoredProof], List[Proof]]:
        """
        Pick ready proofs, largest first, until they cover ``amount`` plus
        the input fee for the picked proofs.

        Raises:
            InsufficientBalanceError: If all ready proofs together fall short
        """
        selected: List[StoredProof] = []
        inputs: List[Proof] = []
        total = 0

        for stored in sorted(ready, key=lambda p: p.amount, reverse=True):
            if total >= amount + client.fee_for_inputs(inputs):
                break
            selected.append(stored)
            inputs.append(stored.to_proof())
            total += stored.amount

        required = amount + client.fee_for_inputs(inputs)
        if total < required:
            raise InsufficientBalanceError(available=sum_proofs(ready), required=required)

        return selected, inputs

    @staticmethod
    def _check_conservation(inputs: Sequence[Proof], split: SplitResult) -> int:
        """Return the fee the mint kept, rejecting splits that create value."""
        input_total = sum_proofs(inputs)
        output_total = sum_proofs(split.keep) + sum_proofs(split.send)

        if output_total > input_total:
            raise ProtocolError(
                "Mint returned more value than was provided",
                details={"inputs": input_total, "outputs": output_total},
            )
        return input_total - output_total

    def _commit_swap(
        self,
        selected: Sequence[StoredProof],
        keep: Sequence[Proof],
        send: Sequence[Proof],
        send_state: ProofState,
        change: Sequence[Proof] = (),
    ) -> None:
        with self.db.transaction():
            for stored in selected:
                self.proofs.update_proof_state(stored.secret, ProofState.SPENT, self.mint_url)
            self.proofs.save_proofs(keep, self.mint_url, ProofState.READY)
            self.proofs.save_proofs(send, self.mint_url, send_state)
            if change:
                self.proofs.save_proofs(change, self.mint_url, ProofState.READY)

    # ---------- balance ----------

    async def get_balance(self) -> BalanceResponse:
        """
        Get ready and pending balances.

        Runs the pending-proof sweep first when inflight proofs exist, so
        tokens that were redeemed since the last query drop out of the
        pending balance.
        """
        if self.proofs.count_proofs(self.mint_url, ProofState.INFLIGHT) > 0:
            await self.clean_pending_proofs()

        pending = self.proofs.get_proofs(self.mint_url, ProofState.INFLIGHT)
        balance = self.proofs.get_balance(self.mint_url, ProofState.READY)
        pending_balance = sum_proofs(pending)

        return BalanceResponse(
            balance=balance,
            pending_balance=pending_balance,
            total=balance + pending_balance,
            pending_proofs_count=len(pending),
        )

    # ---------- minting ----------

    async def create_mint_quote(self, amount: int) -> MintQuoteResponse:
        """
        Request a Lightning invoice for minting ``amount``.

        The quote is stored as UNPAID and handed to the quote monitor, which
        mints it once the invoice is paid.
        """
        self._validate_amount(amount)
        client = await self._get_client()

        info = await self._call_mint("creating mint quote", client.create_mint_quote(amount))
        self.quotes.save_mint_quote(
            MintQuote(
                mint_url=self.mint_url,
                quote_id=info.quote,
                state=MintQuoteState.UNPAID,
                request=info.request,
                amount=amount,
                unit=self.unit,
                expiry=info.expiry,
                pubkey=info.pubkey,
            )
        )
        self.quote_monitor.add_quote(info.quote, amount, info.expiry)

        logger.info(f"Mint quote {info.quote} created for {amount} {self.unit}")
        return MintQuoteResponse(
            quote_id=info.quote,
            lightning_invoice=info.request,
            amount=amount,
            expiry=info.expiry,
        )

    async def check_mint_quote(self, quote_id: str) -> MintQuoteStatusResponse:
        """Fetch the mint's view of a quote and record it locally."""
        if not quote_id:
            raise MissingParameterError("Please provide a quote ID.")

        client = await self._get_client()
        info = await self._call_mint("checking mint quote", client.check_mint_quote(quote_id))
        self.quotes.update_mint_quote_state(self.mint_url, quote_id, info.state)

        is_paid = info.state == MintQuoteState.PAID
        is_issued = info.state == MintQuoteState.ISSUED
        return MintQuoteStatusResponse(
            quote_id=quote_id,
            state=info.state.value,
            amount=info.amount,
            is_paid=is_paid,
            is_issued=is_issued,
            can_mint=is_paid and not is_issued,
        )

    async def mint_proofs(self, quote_id: str, amount: int) -> MintProofsResponse:
        """
        Mint proofs for a paid quote.

        Raises:
            MissingParameterError: If quote_id or amount is missing
            QuoteAlreadyIssuedError: If the ledger already records the quote as ISSUED
            EmptyResultError: If the mint returns no proofs
        """
        if not quote_id or not amount:
            raise MissingParameterError("Please provide both quote ID and amount.")
        self._validate_amount(amount)

        stored = self.quotes.get_mint_quote(self.mint_url, quote_id)
        if stored is not None and stored.state == MintQuoteState.ISSUED:
            raise QuoteAlreadyIssuedError(quote_id)

        client = await self._get_client()
        proofs = await self._call_mint("minting proofs", client.mint_proofs(amount, quote_id))

        if not proofs:
            raise EmptyResultError(
                "No proofs were minted. The quote may not be paid yet.",
                details={"quote_id": quote_id},
            )

        with self.db.transaction():
            self.proofs.save_proofs(proofs, self.mint_url, ProofState.READY)
            self.quotes.update_mint_quote_state(self.mint_url, quote_id, MintQuoteState.ISSUED)

        total = sum_proofs(proofs)
        logger.info(f"Minted {len(proofs)} proofs ({total} {self.unit}) for quote {quote_id}")
        return MintProofsResponse(
            proofs=proofs,
            total_amount=total,
            proof_count=len(proofs),
            proof_amounts=[p.amount for p in proofs],
            quote_id=quote_id,
        )

    async def mint_ecash(self, amount: int) -> MintEcashResponse:
        """
        Create a quote, wait for its invoice to be paid, then mint.

        Blocks for up to mint_poll_attempts * mint_poll_interval seconds. The
        quote is not handed to the monitor, so it is never minted twice.
        """
        self._validate_amount(amount)
        client = await self._get_client()

        info = await self._call_mint("creating mint quote", client.create_mint_quote(amount))
        self.quotes.save_mint_quote(
            MintQuote(
                mint_url=self.mint_url,
                quote_id=info.quote,
                request=info.request,
                amount=amount,
                unit=self.unit,
                expiry=info.expiry,
                pubkey=info.pubkey,
            )
        )
        logger.info(f"Waiting for payment of quote {info.quote} ({amount} {self.unit})")

        for _ in range(self.mint_poll_attempts):
            await asyncio.sleep(self.mint_poll_interval)
            status = await self.check_mint_quote(info.quote)

            if status.is_issued:
                raise ProtocolError(
                    "Quote has already been issued.", details={"quote_id": info.quote}
                )
            if status.is_paid:
                break
        else:
            raise ProtocolError(
                "Timeout waiting for payment. Please try again later.",
                details={"quote_id": info.quote, "lightning_invoice": info.request},
            )

        minted = await self.mint_proofs(info.quote, amount)
        return MintEcashResponse(
            proofs=minted.proofs,
            total_amount=minted.total_amount,
            proof_count=minted.proof_count,
            proof_amounts=minted.proof_amounts,
            quote_id=minted.quote_id,
            lightning_invoice=info.request,
        )

    async def resume_pending_quotes(self) -> int:
        """Hand every stored unpaid or paid, unexpired quote to the monitor."""
        pending = self.quotes.get_pending_mint_quotes(self.mint_url)
        for quote in pending:
            self.quote_monitor.add_quote(quote.quote_id, quote.amount, quote.expiry)

        if pending:
            logger.info(f"Resumed monitoring of {len(pending)} pending mint quotes")
        return len(pending)

    # ---------- spending ----------

    async def send_ecash(
        self, amount: int, mint_url: Optional[str] = None
    ) -> SendEcashResponse:
        """
        Split ready proofs and encode the send set as a token.

        Selected proofs become spent, change stays ready and the sent
        proofs stay inflight until the recipient redeems them.
        """
        self._validate_amount(amount)
        mint_url = self._resolve_mint(mint_url)
        client = await self._get_client()

        async with self._spend_lock:
            ready = self.proofs.get_proofs(mint_url, ProofState.READY)
            selected, inputs = self._select_proofs(
                client, ready, amount + client.receive_fee(amount)
            )

            split = await self._call_mint(
                "splitting proofs", client.send(amount, inputs, include_fees=True)
            )
            fee = self._check_conservation(inputs, split)
            self._commit_swap(selected, split.keep, split.send, ProofState.INFLIGHT)

        token = encode_token(mint_url, split.send, unit=self.unit)
        sent_amount = sum_proofs(split.send)
        logger.info(f"Sent {sent_amount} {self.unit} in {len(split.send)} proofs (fee {fee})")

        return SendEcashResponse(
            sent_amount=sent_amount,
            keep_amount=sum_proofs(split.keep),
            fee=fee,
            sent_proofs=split.send,
            keep_proofs=split.keep,
            cashu_token=token,
        )

    async def receive_ecash(self, token: str) -> ReceiveEcashResponse:
        """Redeem a token at the mint and store the fresh proofs as ready."""
        if not token:
            raise MissingParameterError("Please provide a Cashu token string.")

        decoded = decode_token(token)
        if decoded.mint_url.rstrip("/") != self.mint_url:
            raise UnknownMintError(decoded.mint_url)

        client = await self._get_client()
        proofs = await self._call_mint("receiving token", client.receive(token))

        if not proofs:
            raise EmptyResultError(
                "No proofs were received. The token may be invalid or already spent."
            )

        self.proofs.save_proofs(proofs, self.mint_url, ProofState.READY)

        total = sum_proofs(proofs)
        logger.info(f"Received {len(proofs)} proofs ({total} {self.unit})")
        return ReceiveEcashResponse(
            received_proofs=proofs,
            total_amount=total,
            proof_count=len(proofs),
            proof_amounts=[p.amount for p in proofs],
        )

    async def pay_invoice(self, invoice: str) -> PayInvoiceResponse:
        """
        Pay a Lightning invoice through the mint.

        Flow:
        1. Melt quote for the invoice (amount plus fee reserve)
        2. Swap ready proofs into an exact send set
        3. Melt the send set, recording spent inputs, inflight send set and ready change
        4. Re-check settlement when the melt did not already report a preimage
        """
        if not invoice:
            raise MissingParameterError("Please provide a Lightning invoice.")

        client = await self._get_client()
        melt_quote = await self._call_mint(
            "creating melt quote", client.create_melt_quote(invoice)
        )
        amount_to_melt = melt_quote.amount + melt_quote.fee_reserve

        async with self._spend_lock:
            ready = self.proofs.get_proofs(self.mint_url, ProofState.READY)
            selected, inputs = self._select_proofs(
                client, ready, amount_to_melt + client.receive_fee(amount_to_melt)
            )

            split = await self._call_mint(
                "splitting proofs", client.send(amount_to_melt, inputs, include_fees=True)
            )
            self._check_conservation(inputs, split)

            try:
                melt = await self._call_mint(
                    "melting proofs", client.melt_proofs(melt_quote, split.send)
                )
            except ProtocolError:
                # The swap already happened at the mint; the send set is still spendable.
                self._commit_swap(selected, split.keep, split.send, ProofState.READY)
                logger.warning(f"Melt {melt_quote.quote} failed; swapped proofs kept as ready")
                raise

            self._commit_swap(
                selected, split.keep, split.send, ProofState.INFLIGHT, change=melt.change
            )

        preimage = melt.payment_preimage if melt.state == MeltQuoteState.PAID else None
        if preimage is None:
            preimage = await self._confirm_melt(client, melt_quote.quote)

        logger.info(
            f"Paid invoice via melt {melt_quote.quote}: {melt_quote.amount} {self.unit} "
            f"(settled={preimage is not None})"
        )
        return PayInvoiceResponse(
            melt_quote_id=melt_quote.quote,
            amount_paid=melt_quote.amount,
            fee_reserve=melt_quote.fee_reserve,
            total_amount=amount_to_melt,
            payment_preimage=preimage,
            remaining_balance=self.proofs.get_balance(self.mint_url, ProofState.READY),
            change_proofs=melt.change,
            sent_proofs=split.send,
            kept_proofs=split.keep,
        )

    async def _confirm_melt(self, client: MintClient, quote_id: str) -> Optional[str]:
        """Best-effort settlement check; None when still unsettled."""
        for _ in range(self.melt_confirm_attempts):
            await asyncio.sleep(self.melt_confirm_interval)
            try:
                status = await client.check_melt_quote(quote_id)
            except Exception as e:
                logger.warning(f"Could not confirm settlement of melt {quote_id}: {e}")
                continue

            if status.state == MeltQuoteState.PAID:
                return status.payment_preimage

        return None

    # ---------- maintenance ----------

    async def clean_pending_proofs(self) -> CleanPendingProofsResponse:
        """
        Mark inflight proofs the mint reports as spent.

        Never raises: a failed state query is logged and leaves every
        inflight proof for the next sweep.
        """
        pending = self.proofs.get_proofs(self.mint_url, ProofState.INFLIGHT)
        if not pending:
            return CleanPendingProofsResponse(
                cleaned_count=0, cleaned_amount=0, total_checked=0, remaining_pending=0
            )

        cleaned_count = 0
        cleaned_amount = 0
        try:
            client = await self._get_client()
            states = await client.check_proofs_states([p.to_proof() for p in pending])
            spent = {s.secret for s in states if s.state == ProofSpendState.SPENT}

            with self.db.transaction():
                for stored in pending:
                    if stored.secret not in spent:
                        continue
                    if self.proofs.update_proof_state(
                        stored.secret, ProofState.SPENT, self.mint_url
                    ):
                        cleaned_count += 1
                        cleaned_amount += stored.amount

        except Exception as e:
            logger.warning(f"Error checking pending proof states: {e}")
            cleaned_count = 0
            cleaned_amount = 0

        if cleaned_count:
            logger.info(f"Cleaned {cleaned_count} spent proofs ({cleaned_amount} {self.unit})")

        return CleanPendingProofsResponse(
            cleaned_count=cleaned_count,
            cleaned_amount=cleaned_amount,
            total_checked=len(pending),
            remaining_pending=len(pending) - cleaned_count,
        )

    # ---------- info ----------

    def get_info(self) -> InfoResponse:
        return InfoResponse(
            mint_url=self.mint_url,
            wallet_db_path=self.wallet_db_path,
            unit=self.unit,
        )

    def get_lud06_info(self) -> LUD06InfoResponse:
        if self.lud06 is None:
            raise MintUnavailableError("LNURL-pay is not configured for this wallet.")
        return self.lud06

    def get_quote_pool_status(self) -> QuotePoolStatus:
        return self.quote_monitor.get_pool_status()

    def close(self) -> None:
        """Stop the quote monitor and close the ledger."""
        self.quote_monitor.close()
        self.db.close()
        logger.info("WalletService closed")
