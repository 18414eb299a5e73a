"""
MockMintClient - Simulates a mint in-process.

Issues random-secret proofs in power-of-two denominations, tracks which
secrets have been redeemed, and walks mint and melt quotes through their
states, for development and testing without a reachable mint.
"""

import asyncio
import logging
import math
import re
import secrets
import time
import uuid
from collections import Counter
from decimal import Decimal
from typing import Dict, List, Optional

from app.models.mint_protocol import (
    MeltQuoteInfo,
    MeltQuoteState,
    MeltResult,
    MintQuoteInfo,
    ProofSpendState,
    ProofStateInfo,
    SplitResult,
)
from ledger_engine.exceptions import ProtocolError
from ledger_engine.models import DLEQ, MintQuoteState, Proof, sum_proofs

from .mint_client import MintClient
from .token_codec import decode_token

logger = logging.getLogger(__name__)

# BOLT11 human-readable part: ln + currency + optional amount + multiplier.
_BOLT11_AMOUNT = re.compile(r"^ln(?:bcrt|bc|tbs|tb)(\d+)([munp]?)1", re.IGNORECASE)

# Satoshis per unit of each BOLT11 multiplier.
_SATS_PER_MULTIPLIER = {
    "": Decimal(100_000_000),
    "m": Decimal(100_000),
    "u": Decimal(100),
    "n": Decimal("0.1"),
    "p": Decimal("0.0001"),
}


def amount_split(amount: int) -> List[int]:
    """Split an amount into ascending powers of two."""
    return [1 << bit for bit in range(amount.bit_length()) if amount & (1 << bit)]


def invoice_amount_sats(invoice: str) -> Optional[int]:
    """Amount encoded in a BOLT11 invoice prefix, in whole sats."""
    match = _BOLT11_AMOUNT.match(invoice.strip())
    if not match:
        return None
    value = Decimal(match.group(1)) * _SATS_PER_MULTIPLIER[match.group(2).lower()]
    return int(value)


class MockMintClient(MintClient):
    """
    Simulated mint.

    Adds test hooks on top of the MintClient interface:
    - pay_mint_quote(): mark an invoice as paid by an outside payer
    - settle_melt_quote(): complete a payment left pending
    - redeem_externally(): spend proofs as if a token recipient claimed them
    - calls: Counter of operations performed, keyed by method name
    """

    def __init__(
        self,
        mint_url: str = "https://mock.mint.local",
        unit: str = "sat",
        input_fee_ppk: int = 0,
        auto_pay: bool = False,
        settle_payments: bool = True,
        lightning_fee: int = 0,
        quote_ttl_seconds: int = 3600,
    ):
        self._mint_url = mint_url.rstrip("/")
        self.unit = unit
        self.input_fee_ppk = input_fee_ppk
        self.auto_pay = auto_pay
        self.settle_payments = settle_payments
        self.lightning_fee = lightning_fee
        self.quote_ttl_seconds = quote_ttl_seconds

        self.keyset_id = "00" + secrets.token_hex(7)
        self.loaded = False
        self.calls: Counter = Counter()

        self._mint_quotes: Dict[str, Dict] = {}
        self._melt_quotes: Dict[str, Dict] = {}
        self._outstanding: Dict[str, int] = {}  # secret -> amount
        self._spent: set[str] = set()

        logger.info(
            f"[MOCK-MINT] MockMintClient initialized for {self._mint_url} "
            f"(input_fee_ppk={input_fee_ppk}, auto_pay={auto_pay})"
        )

    @property
    def mint_url(self) -> str:
        return self._mint_url

    async def load_mint(self) -> None:
        self.calls["load_mint"] += 1
        self.loaded = True
        logger.info(f"[MOCK-MINT] Keyset {self.keyset_id} loaded")

    # ---------- fees ----------

    def _fee_for_count(self, count: int) -> int:
        return math.ceil(count * self.input_fee_ppk / 1000)

    def fee_for_inputs(self, proofs: List[Proof]) -> int:
        return self._fee_for_count(len(proofs))

    def receive_fee(self, amount: int) -> int:
        return self._fee_for_count(len(amount_split(amount)))

    # ---------- proof bookkeeping ----------

    def _issue(self, amount: int) -> List[Proof]:
        proofs = []
        for denomination in amount_split(amount):
            secret = secrets.token_hex(32)
            self._outstanding[secret] = denomination
            proofs.append(
                Proof(
                    keyset_id=self.keyset_id,
                    amount=denomination,
                    secret=secret,
                    c="02" + secrets.token_hex(32),
                    dleq=DLEQ(e=secrets.token_hex(32), s=secrets.token_hex(32)),
                )
            )
        return proofs

    def _verify_inputs(self, proofs: List[Proof]) -> None:
        seen = set()
        for proof in proofs:
            if proof.secret in seen:
                raise ProtocolError("Duplicate inputs provided")
            seen.add(proof.secret)

            if proof.secret in self._spent:
                raise ProtocolError(
                    "Token already spent.", details={"secret": proof.secret}
                )
            if self._outstanding.get(proof.secret) != proof.amount:
                raise ProtocolError(
                    "Could not verify proofs.", details={"secret": proof.secret}
                )

    def _spend(self, proofs: List[Proof]) -> None:
        for proof in proofs:
            self._outstanding.pop(proof.secret, None)
            self._spent.add(proof.secret)

    def redeem_externally(self, proofs: List[Proof]) -> None:
        """Mark proofs spent as if their holder redeemed them elsewhere."""
        self._verify_inputs(proofs)
        self._spend(proofs)
        logger.info(f"[MOCK-MINT] {len(proofs)} proofs redeemed externally")

    # ---------- mint quotes ----------

    async def create_mint_quote(self, amount: int) -> MintQuoteInfo:
        self.calls["create_mint_quote"] += 1
        await asyncio.sleep(0)

        if amount <= 0:
            raise ProtocolError("Amount must be positive")

        quote_id = uuid.uuid4().hex
        self._mint_quotes[quote_id] = {
            "amount": amount,
            "request": f"lnbc{amount * 10}n1p{secrets.token_hex(24)}",
            "expiry": int(time.time()) + self.quote_ttl_seconds,
            "state": MintQuoteState.UNPAID,
        }
        logger.info(f"[MOCK-MINT] Mint quote created: {quote_id} for {amount}")
        return self._mint_quote_info(quote_id)

    def _mint_quote_info(self, quote_id: str) -> MintQuoteInfo:
        quote = self._mint_quotes[quote_id]
        return MintQuoteInfo(
            quote=quote_id,
            request=quote["request"],
            amount=quote["amount"],
            expiry=quote["expiry"],
            state=quote["state"],
        )

    def _get_mint_quote(self, quote_id: str) -> Dict:
        if quote_id not in self._mint_quotes:
            raise ProtocolError(f"Quote not found: {quote_id}", details={"quote": quote_id})
        return self._mint_quotes[quote_id]

    def pay_mint_quote(self, quote_id: str) -> None:
        """Simulate the invoice of a mint quote being paid."""
        quote = self._mint_quotes[quote_id]
        if quote["state"] == MintQuoteState.UNPAID:
            quote["state"] = MintQuoteState.PAID
            logger.info(f"[MOCK-MINT] Mint quote paid: {quote_id}")

    async def check_mint_quote(self, quote_id: str) -> MintQuoteInfo:
        self.calls["check_mint_quote"] += 1
        await asyncio.sleep(0)

        quote = self._get_mint_quote(quote_id)
        if self.auto_pay and quote["state"] == MintQuoteState.UNPAID:
            self.pay_mint_quote(quote_id)
        return self._mint_quote_info(quote_id)

    async def mint_proofs(self, amount: int, quote_id: str) -> List[Proof]:
        self.calls["mint_proofs"] += 1
        await asyncio.sleep(0)

        quote = self._get_mint_quote(quote_id)
        if quote["state"] == MintQuoteState.UNPAID:
            raise ProtocolError("Quote not paid", details={"quote": quote_id})
        if quote["state"] == MintQuoteState.ISSUED:
            raise ProtocolError("Quote already issued", details={"quote": quote_id})
        if amount != quote["amount"]:
            raise ProtocolError(
                "Amount does not match quote",
                details={"quote": quote_id, "expected": quote["amount"], "got": amount},
            )

        quote["state"] = MintQuoteState.ISSUED
        proofs = self._issue(amount)
        logger.info(f"[MOCK-MINT] Issued {len(proofs)} proofs for quote {quote_id}")
        return proofs

    # ---------- swaps ----------

    async def send(
        self, amount: int, proofs: List[Proof], include_fees: bool = True
    ) -> SplitResult:
        self.calls["send"] += 1
        await asyncio.sleep(0)

        self._verify_inputs(proofs)
        send_total = amount + (self.receive_fee(amount) if include_fees else 0)
        input_total = sum_proofs(proofs)
        swap_fee = self.fee_for_inputs(proofs)

        if input_total < send_total + swap_fee:
            raise ProtocolError(
                "Inputs do not cover outputs and fees",
                details={"inputs": input_total, "outputs": send_total, "fee": swap_fee},
            )

        self._spend(proofs)
        keep = self._issue(input_total - swap_fee - send_total)
        send = self._issue(send_total)
        return SplitResult(keep=keep, send=send)

    async def receive(self, token: str) -> List[Proof]:
        self.calls["receive"] += 1
        await asyncio.sleep(0)

        decoded = decode_token(token)
        if decoded.mint_url.rstrip("/") != self._mint_url:
            raise ProtocolError(
                "Token is from a different mint", details={"mint": decoded.mint_url}
            )

        self._verify_inputs(decoded.proofs)
        value = decoded.amount - self.fee_for_inputs(decoded.proofs)
        self._spend(decoded.proofs)
        return self._issue(value) if value > 0 else []

    # ---------- melts ----------

    async def create_melt_quote(self, invoice: str) -> MeltQuoteInfo:
        self.calls["create_melt_quote"] += 1
        await asyncio.sleep(0)

        amount = invoice_amount_sats(invoice)
        if not amount:
            raise ProtocolError("Invoice has no amount", details={"invoice": invoice[:24]})

        quote_id = uuid.uuid4().hex
        self._melt_quotes[quote_id] = {
            "request": invoice,
            "amount": amount,
            "fee_reserve": max(2, math.ceil(amount * 0.01)),
            "state": MeltQuoteState.UNPAID,
            "preimage": None,
        }
        return self._melt_quote_info(quote_id)

    def _melt_quote_info(self, quote_id: str) -> MeltQuoteInfo:
        quote = self._melt_quotes[quote_id]
        return MeltQuoteInfo(
            quote=quote_id,
            request=quote["request"],
            amount=quote["amount"],
            fee_reserve=quote["fee_reserve"],
            state=quote["state"],
            payment_preimage=quote["preimage"],
        )

    async def melt_proofs(
        self, melt_quote: MeltQuoteInfo, proofs: List[Proof]
    ) -> MeltResult:
        self.calls["melt_proofs"] += 1
        await asyncio.sleep(0)

        if melt_quote.quote not in self._melt_quotes:
            raise ProtocolError(f"Melt quote not found: {melt_quote.quote}")
        quote = self._melt_quotes[melt_quote.quote]
        if quote["state"] != MeltQuoteState.UNPAID:
            raise ProtocolError("Melt quote already used", details={"quote": melt_quote.quote})

        self._verify_inputs(proofs)
        input_total = sum_proofs(proofs)
        input_fee = self.fee_for_inputs(proofs)
        required = quote["amount"] + quote["fee_reserve"] + input_fee
        if input_total < required:
            raise ProtocolError(
                "Not enough inputs provided for melt",
                details={"provided": input_total, "required": required},
            )

        self._spend(proofs)
        lightning_fee = min(self.lightning_fee, quote["fee_reserve"])
        change = self._issue(input_total - input_fee - quote["amount"] - lightning_fee)

        if self.settle_payments:
            quote["state"] = MeltQuoteState.PAID
            quote["preimage"] = secrets.token_hex(32)
        else:
            quote["state"] = MeltQuoteState.PENDING

        logger.info(f"[MOCK-MINT] Melt {melt_quote.quote} -> {quote['state'].value}")
        return MeltResult(
            state=quote["state"],
            change=change,
            payment_preimage=quote["preimage"],
        )

    def settle_melt_quote(self, quote_id: str) -> None:
        """Complete a payment that was left pending."""
        quote = self._melt_quotes[quote_id]
        if quote["state"] == MeltQuoteState.PENDING:
            quote["state"] = MeltQuoteState.PAID
            quote["preimage"] = secrets.token_hex(32)

    async def check_melt_quote(self, quote_id: str) -> MeltQuoteInfo:
        self.calls["check_melt_quote"] += 1
        await asyncio.sleep(0)

        if quote_id not in self._melt_quotes:
            raise ProtocolError(f"Melt quote not found: {quote_id}")
        return self._melt_quote_info(quote_id)

    # ---------- state checks ----------

    async def check_proofs_states(self, proofs: List[Proof]) -> List[ProofStateInfo]:
        self.calls["check_proofs_states"] += 1
        await asyncio.sleep(0)

        return [
            ProofStateInfo(
                secret=p.secret,
                state=(
                    ProofSpendState.SPENT
                    if p.secret in self._spent
                    else ProofSpendState.UNSPENT
                ),
            )
            for p in proofs
        ]
