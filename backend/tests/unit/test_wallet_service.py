"""
Unit Tests for WalletService

Drives the wallet against MockMintClient on a temporary ledger and checks
validation, ledger effects and failure behavior of every operation.
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from app.models.mint_protocol import SplitResult
from app.services.token_codec import decode_token, encode_token
from app.services.wallet_service import WalletService
from ledger_engine import (
    EmptyResultError,
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidTokenError,
    MintQuote,
    MintQuoteState,
    MintUnavailableError,
    MissingParameterError,
    Proof,
    ProofState,
    ProtocolError,
    QuoteAlreadyIssuedError,
    UnknownMintError,
    sum_proofs,
)

INVOICE_100 = "lnbc1000n1pwalletservicetest"


def ledger_snapshot(wallet):
    return sorted((p.secret, p.state) for p in wallet.proofs.get_all_proofs())


async def external_proofs(mint, amount):
    """Proofs minted by someone else, ready to be sent to this wallet."""
    quote = await mint.create_mint_quote(amount)
    mint.pay_mint_quote(quote.quote)
    return await mint.mint_proofs(amount, quote.quote)


class TestClientLifecycle:
    """Tests for lazy mint client creation."""

    @pytest.mark.asyncio
    async def test_client_created_and_loaded_once(self, tmp_path, mint):
        created = []

        def factory():
            created.append(mint)
            return mint

        service = WalletService(mint.mint_url, str(tmp_path / "w.sqlite"), factory)
        try:
            await asyncio.gather(
                service.check_mint_quote((await mint.create_mint_quote(1)).quote),
                service.check_mint_quote((await mint.create_mint_quote(2)).quote),
            )
            await service.get_balance()
            await service.clean_pending_proofs()
        finally:
            service.close()

        assert len(created) == 1
        assert mint.calls["load_mint"] == 1

    @pytest.mark.asyncio
    async def test_missing_client_reports_unavailable(self, tmp_path):
        def factory():
            raise NotImplementedError("no mint configured")

        service = WalletService("https://mint.test.local", str(tmp_path / "w.sqlite"), factory)
        try:
            with pytest.raises(MintUnavailableError) as exc_info:
                await service.create_mint_quote(10)
        finally:
            service.close()

        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_load_failure_is_protocol_error(self, wallet, mint):
        with patch.object(mint, "load_mint", AsyncMock(side_effect=ConnectionError("down"))):
            with pytest.raises(ProtocolError):
                await wallet.create_mint_quote(10)


class TestBalance:
    """Tests for get_balance()."""

    @pytest.mark.asyncio
    async def test_empty_wallet(self, wallet):
        balance = await wallet.get_balance()

        assert balance.balance == 0
        assert balance.pending_balance == 0
        assert balance.total == 0
        assert balance.pending_proofs_count == 0

    @pytest.mark.asyncio
    async def test_balance_after_funding(self, wallet, fund):
        await fund(100)

        balance = await wallet.get_balance()
        assert balance.balance == 100
        assert balance.total == 100

    @pytest.mark.asyncio
    async def test_redeemed_tokens_leave_pending_balance(self, wallet, mint, fund):
        await fund(100)
        sent = await wallet.send_ecash(30)

        balance = await wallet.get_balance()
        assert balance.pending_balance == 30

        mint.redeem_externally(sent.sent_proofs)

        balance = await wallet.get_balance()
        assert balance.balance == 70
        assert balance.pending_balance == 0
        assert balance.total == 70

    @pytest.mark.asyncio
    async def test_no_sweep_without_inflight_proofs(self, wallet, mint, fund):
        await fund(10)
        await wallet.get_balance()

        assert mint.calls["check_proofs_states"] == 0


class TestMintQuotes:
    """Tests for create_mint_quote() and check_mint_quote()."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -5, True, 1.5, "10", None])
    async def test_invalid_amount(self, wallet, mint, amount):
        with pytest.raises(InvalidAmountError):
            await wallet.create_mint_quote(amount)

        assert mint.calls["create_mint_quote"] == 0

    @pytest.mark.asyncio
    async def test_quote_persisted_and_monitored(self, wallet):
        response = await wallet.create_mint_quote(100)

        stored = wallet.quotes.get_mint_quote(wallet.mint_url, response.quote_id)
        assert stored.state == MintQuoteState.UNPAID
        assert stored.request == response.lightning_invoice
        assert stored.amount == 100
        assert wallet.quote_monitor.tracked_quote_ids() == [response.quote_id]
        assert wallet.quote_monitor.is_running

    @pytest.mark.asyncio
    async def test_remote_rejection(self, wallet, mint):
        with patch.object(
            mint, "create_mint_quote", AsyncMock(side_effect=ProtocolError("rejected"))
        ):
            with pytest.raises(ProtocolError):
                await wallet.create_mint_quote(100)

        assert wallet.quote_monitor.tracked_quote_ids() == []

    @pytest.mark.asyncio
    async def test_check_requires_quote_id(self, wallet):
        with pytest.raises(MissingParameterError):
            await wallet.check_mint_quote("")

    @pytest.mark.asyncio
    async def test_check_reports_and_records_state(self, wallet, mint):
        quote = await wallet.create_mint_quote(50)

        status = await wallet.check_mint_quote(quote.quote_id)
        assert status.is_paid is False
        assert status.can_mint is False

        mint.pay_mint_quote(quote.quote_id)
        status = await wallet.check_mint_quote(quote.quote_id)
        assert status.is_paid is True
        assert status.is_issued is False
        assert status.can_mint is True
        assert status.amount == 50
        assert wallet.quotes.get_mint_quote(wallet.mint_url, quote.quote_id).state == (
            MintQuoteState.PAID
        )

        again = await wallet.check_mint_quote(quote.quote_id)
        assert again == status


class TestMintProofs:
    """Tests for mint_proofs()."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("quote_id,amount", [("", 10), ("abc", None), ("abc", 0)])
    async def test_missing_parameters(self, wallet, quote_id, amount):
        with pytest.raises(MissingParameterError):
            await wallet.mint_proofs(quote_id, amount)

    @pytest.mark.asyncio
    async def test_mint_persists_ready_proofs_and_issues_quote(self, wallet, mint):
        quote = await wallet.create_mint_quote(100)
        mint.pay_mint_quote(quote.quote_id)

        response = await wallet.mint_proofs(quote.quote_id, 100)

        assert response.total_amount == 100
        assert sorted(response.proof_amounts) == [4, 32, 64]
        assert wallet.proofs.get_balance(wallet.mint_url) == 100
        assert wallet.quotes.get_mint_quote(wallet.mint_url, quote.quote_id).state == (
            MintQuoteState.ISSUED
        )

    @pytest.mark.asyncio
    async def test_issued_quote_refused_locally(self, wallet, mint):
        quote = await wallet.create_mint_quote(8)
        mint.pay_mint_quote(quote.quote_id)
        await wallet.mint_proofs(quote.quote_id, 8)

        with pytest.raises(QuoteAlreadyIssuedError):
            await wallet.mint_proofs(quote.quote_id, 8)

        assert mint.calls["mint_proofs"] == 1
        assert wallet.proofs.get_balance(wallet.mint_url) == 8

    @pytest.mark.asyncio
    async def test_unpaid_quote_is_protocol_error(self, wallet):
        quote = await wallet.create_mint_quote(8)

        with pytest.raises(ProtocolError):
            await wallet.mint_proofs(quote.quote_id, 8)

        assert wallet.proofs.get_all_proofs() == []

    @pytest.mark.asyncio
    async def test_empty_result(self, wallet, mint):
        quote = await wallet.create_mint_quote(8)

        with patch.object(mint, "mint_proofs", AsyncMock(return_value=[])):
            with pytest.raises(EmptyResultError):
                await wallet.mint_proofs(quote.quote_id, 8)

        assert wallet.quotes.get_mint_quote(wallet.mint_url, quote.quote_id).state == (
            MintQuoteState.UNPAID
        )

    @pytest.mark.asyncio
    async def test_unexpected_client_error_wrapped(self, wallet, mint):
        with patch.object(mint, "mint_proofs", AsyncMock(side_effect=RuntimeError("boom"))):
            with pytest.raises(ProtocolError, match="boom"):
                await wallet.mint_proofs("some-quote", 8)


class TestMintEcash:
    """Tests for the blocking mint_ecash() flow."""

    @pytest.mark.asyncio
    async def test_mints_once_paid(self, wallet, mint):
        mint.auto_pay = True

        response = await wallet.mint_ecash(21)

        assert response.total_amount == 21
        assert response.lightning_invoice.startswith("lnbc")
        assert wallet.proofs.get_balance(wallet.mint_url) == 21
        assert wallet.quote_monitor.tracked_quote_ids() == []

    @pytest.mark.asyncio
    async def test_times_out_when_unpaid(self, wallet, mint):
        with pytest.raises(ProtocolError, match="Timeout"):
            await wallet.mint_ecash(21)

        assert mint.calls["check_mint_quote"] == wallet.mint_poll_attempts
        assert wallet.proofs.get_all_proofs() == []


class TestSendEcash:
    """Tests for send_ecash()."""

    @pytest.mark.asyncio
    async def test_send_splits_and_encodes(self, wallet, fund):
        await fund(100)

        response = await wallet.send_ecash(30)

        assert response.sent_amount == 30
        assert response.keep_amount == 34
        assert response.fee == 0
        assert response.cashu_token.startswith("cashuB")
        token = decode_token(response.cashu_token)
        assert token.mint_url == wallet.mint_url
        assert token.amount == 30

        assert wallet.proofs.get_balance(wallet.mint_url, ProofState.READY) == 70
        assert wallet.proofs.get_balance(wallet.mint_url, ProofState.INFLIGHT) == 30
        inflight = {p.secret for p in wallet.proofs.get_proofs(wallet.mint_url, ProofState.INFLIGHT)}
        assert inflight == {p.secret for p in response.sent_proofs}

    @pytest.mark.asyncio
    async def test_selected_proofs_marked_spent(self, wallet, fund):
        minted = await fund(64)

        await wallet.send_ecash(10)

        for proof in minted.proofs:
            assert wallet.proofs.get_proof(wallet.mint_url, proof.secret).state == ProofState.SPENT

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", [0, -1, False])
    async def test_invalid_amount(self, wallet, amount):
        with pytest.raises(InvalidAmountError):
            await wallet.send_ecash(amount)

    @pytest.mark.asyncio
    async def test_insufficient_balance_leaves_ledger_untouched(self, wallet, mint, fund):
        await fund(100)
        before = ledger_snapshot(wallet)

        with pytest.raises(InsufficientBalanceError) as exc_info:
            await wallet.send_ecash(1000)

        assert exc_info.value.details == {"available": 100, "required": 1000}
        assert ledger_snapshot(wallet) == before
        assert mint.calls["send"] == 0

    @pytest.mark.asyncio
    async def test_mint_selector(self, wallet, fund):
        await fund(16)

        response = await wallet.send_ecash(4, mint_url=wallet.mint_url + "/")
        assert response.sent_amount == 4

        with pytest.raises(UnknownMintError):
            await wallet.send_ecash(4, mint_url="https://other.mint.local")

    @pytest.mark.asyncio
    async def test_fee_is_conserved(self, wallet, mint, fund):
        mint.input_fee_ppk = 100
        minted = await fund(64)

        response = await wallet.send_ecash(10)

        selected = sum_proofs(minted.proofs)
        assert response.sent_amount + response.keep_amount == selected - response.fee
        assert response.fee == 1
        # The recipient's redemption fee travels with the token.
        assert response.sent_amount == 11

    @pytest.mark.asyncio
    async def test_split_creating_value_is_rejected(self, wallet, mint, fund):
        await fund(8)
        before = ledger_snapshot(wallet)
        inflated = SplitResult(
            keep=[Proof(keyset_id="00", amount=1024, secret="forged", c="02ab")],
            send=[],
        )

        with patch.object(mint, "send", AsyncMock(return_value=inflated)):
            with pytest.raises(ProtocolError, match="more value"):
                await wallet.send_ecash(4)

        assert ledger_snapshot(wallet) == before

    @pytest.mark.asyncio
    async def test_mint_failure_leaves_ledger_untouched(self, wallet, mint, fund):
        await fund(32)
        before = ledger_snapshot(wallet)

        with patch.object(mint, "send", AsyncMock(side_effect=TimeoutError("slow"))):
            with pytest.raises(ProtocolError):
                await wallet.send_ecash(4)

        assert ledger_snapshot(wallet) == before

    @pytest.mark.asyncio
    async def test_storage_failure_rolls_back_whole_swap(self, wallet, fund):
        await fund(32)
        before = ledger_snapshot(wallet)

        with patch.object(
            wallet.proofs, "save_proofs", side_effect=[1, RuntimeError("disk full")]
        ):
            with pytest.raises(RuntimeError):
                await wallet.send_ecash(4)

        assert ledger_snapshot(wallet) == before

    @pytest.mark.asyncio
    async def test_concurrent_sends_use_distinct_proofs(self, wallet, fund):
        await fund(64)
        await fund(64)

        first, second = await asyncio.gather(wallet.send_ecash(10), wallet.send_ecash(10))

        assert first.sent_amount == second.sent_amount == 10
        assert wallet.proofs.get_balance(wallet.mint_url, ProofState.READY) == 108
        assert wallet.proofs.get_balance(wallet.mint_url, ProofState.INFLIGHT) == 20


class TestReceiveEcash:
    """Tests for receive_ecash()."""

    @pytest.mark.asyncio
    async def test_receive_stores_ready_proofs(self, wallet, mint):
        token = encode_token(mint.mint_url, await external_proofs(mint, 40))

        response = await wallet.receive_ecash(token)

        assert response.total_amount == 40
        assert response.proof_count == len(response.proof_amounts)
        assert wallet.proofs.get_balance(wallet.mint_url) == 40

    @pytest.mark.asyncio
    @pytest.mark.parametrize("version,prefix", [(4, "cashuB"), (3, "cashuA")])
    async def test_receive_accepts_both_token_versions(self, wallet, mint, version, prefix):
        proofs = await external_proofs(mint, 12)
        token = encode_token(mint.mint_url, proofs, version=version)
        assert token.startswith(prefix)

        response = await wallet.receive_ecash(token)

        assert mint.calls["receive"] == 1
        assert response.total_amount == 12
        assert wallet.proofs.get_balance(wallet.mint_url) == 12

    @pytest.mark.asyncio
    async def test_missing_token(self, wallet):
        with pytest.raises(MissingParameterError):
            await wallet.receive_ecash("")

    @pytest.mark.asyncio
    async def test_malformed_token(self, wallet, mint):
        with pytest.raises(InvalidTokenError):
            await wallet.receive_ecash("cashuAnot-a-token")

        assert mint.calls["receive"] == 0

    @pytest.mark.asyncio
    async def test_token_from_other_mint(self, wallet, mint):
        token = encode_token("https://other.mint.local", await external_proofs(mint, 4))

        with pytest.raises(UnknownMintError):
            await wallet.receive_ecash(token)

    @pytest.mark.asyncio
    async def test_already_redeemed_token(self, wallet, mint):
        token = encode_token(mint.mint_url, await external_proofs(mint, 4))
        await wallet.receive_ecash(token)

        with pytest.raises(ProtocolError):
            await wallet.receive_ecash(token)

        assert wallet.proofs.get_balance(wallet.mint_url) == 4

    @pytest.mark.asyncio
    async def test_empty_result(self, wallet, mint):
        token = encode_token(mint.mint_url, await external_proofs(mint, 4))

        with patch.object(mint, "receive", AsyncMock(return_value=[])):
            with pytest.raises(EmptyResultError):
                await wallet.receive_ecash(token)


class TestPayInvoice:
    """Tests for pay_invoice()."""

    @pytest.mark.asyncio
    async def test_pay_records_inflight_and_change(self, wallet, mint, fund):
        await fund(200)

        response = await wallet.pay_invoice(INVOICE_100)

        assert response.amount_paid == 100
        assert response.fee_reserve == 2
        assert response.total_amount == 102
        assert response.payment_preimage
        assert sum_proofs(response.sent_proofs) == 102
        assert sum_proofs(response.change_proofs) == 2
        assert response.remaining_balance == 100
        assert wallet.proofs.get_balance(wallet.mint_url, ProofState.INFLIGHT) == 102
        # Settlement already known from the melt.
        assert mint.calls["check_melt_quote"] == 0

    @pytest.mark.asyncio
    async def test_melted_proofs_cleaned_on_next_balance(self, wallet, fund):
        await fund(200)
        await wallet.pay_invoice(INVOICE_100)

        balance = await wallet.get_balance()

        assert balance.balance == 100
        assert balance.pending_balance == 0

    @pytest.mark.asyncio
    async def test_missing_invoice(self, wallet):
        with pytest.raises(MissingParameterError):
            await wallet.pay_invoice("")

    @pytest.mark.asyncio
    async def test_insufficient_balance(self, wallet, mint, fund):
        await fund(50)
        before = ledger_snapshot(wallet)

        with pytest.raises(InsufficientBalanceError):
            await wallet.pay_invoice(INVOICE_100)

        assert ledger_snapshot(wallet) == before
        assert mint.calls["melt_proofs"] == 0

    @pytest.mark.asyncio
    async def test_unsettled_payment_returns_without_preimage(self, wallet, mint, fund):
        mint.settle_payments = False
        await fund(200)

        response = await wallet.pay_invoice(INVOICE_100)

        assert response.payment_preimage is None
        assert mint.calls["check_melt_quote"] == wallet.melt_confirm_attempts

    @pytest.mark.asyncio
    async def test_settlement_picked_up_by_recheck(self, wallet, mint, fund):
        mint.settle_payments = False
        await fund(200)

        async def settle_then_check(quote_id):
            mint.settle_melt_quote(quote_id)
            return mint._melt_quote_info(quote_id)

        with patch.object(mint, "check_melt_quote", side_effect=settle_then_check):
            response = await wallet.pay_invoice(INVOICE_100)

        assert response.payment_preimage

    @pytest.mark.asyncio
    async def test_failed_melt_keeps_swapped_proofs_spendable(self, wallet, mint, fund):
        minted = await fund(200)

        with patch.object(mint, "melt_proofs", AsyncMock(side_effect=RuntimeError("route not found"))):
            with pytest.raises(ProtocolError):
                await wallet.pay_invoice(INVOICE_100)

        assert wallet.proofs.get_balance(wallet.mint_url, ProofState.READY) == 200
        assert wallet.proofs.get_balance(wallet.mint_url, ProofState.INFLIGHT) == 0
        for proof in minted.proofs:
            assert wallet.proofs.get_proof(wallet.mint_url, proof.secret).state == ProofState.SPENT

        # The recovered proofs are genuinely spendable at the mint.
        retry = await wallet.pay_invoice(INVOICE_100)
        assert retry.payment_preimage


class TestCleanPendingProofs:
    """Tests for clean_pending_proofs()."""

    @pytest.mark.asyncio
    async def test_nothing_pending(self, wallet, mint):
        response = await wallet.clean_pending_proofs()

        assert response.total_checked == 0
        assert response.cleaned_count == 0
        assert mint.calls["check_proofs_states"] == 0

    @pytest.mark.asyncio
    async def test_only_spent_proofs_cleaned(self, wallet, mint, fund):
        await fund(64)
        first = await wallet.send_ecash(8)
        await wallet.send_ecash(16)
        mint.redeem_externally(first.sent_proofs)

        response = await wallet.clean_pending_proofs()

        assert response.cleaned_count == len(first.sent_proofs)
        assert response.cleaned_amount == 8
        assert response.remaining_pending == response.total_checked - response.cleaned_count
        assert wallet.proofs.get_balance(wallet.mint_url, ProofState.INFLIGHT) == 16

    @pytest.mark.asyncio
    async def test_query_failure_is_swallowed(self, wallet, mint, fund):
        await fund(64)
        sent = await wallet.send_ecash(8)

        with patch.object(
            mint, "check_proofs_states", AsyncMock(side_effect=ConnectionError("offline"))
        ):
            response = await wallet.clean_pending_proofs()

        assert response.cleaned_count == 0
        assert response.remaining_pending == len(sent.sent_proofs)
        assert wallet.proofs.get_balance(wallet.mint_url, ProofState.INFLIGHT) == 8


class TestResumeAndInfo:
    """Tests for resume_pending_quotes() and the info accessors."""

    @pytest.mark.asyncio
    async def test_resume_tracks_pending_quotes(self, wallet):
        for quote_id, state in [
            ("unpaid", MintQuoteState.UNPAID),
            ("paid", MintQuoteState.PAID),
            ("issued", MintQuoteState.ISSUED),
        ]:
            wallet.quotes.save_mint_quote(
                MintQuote(
                    mint_url=wallet.mint_url,
                    quote_id=quote_id,
                    state=state,
                    request="lnbc10n1p",
                    amount=1,
                    expiry=4_000_000_000,
                )
            )

        assert await wallet.resume_pending_quotes() == 2
        assert set(wallet.quote_monitor.tracked_quote_ids()) == {"unpaid", "paid"}

    @pytest.mark.asyncio
    async def test_info(self, wallet):
        info = wallet.get_info()

        assert info.mint_url == wallet.mint_url
        assert info.wallet_db_path == wallet.wallet_db_path
        assert info.unit == "sat"

    @pytest.mark.asyncio
    async def test_lud06_unconfigured(self, wallet):
        with pytest.raises(MintUnavailableError):
            wallet.get_lud06_info()
