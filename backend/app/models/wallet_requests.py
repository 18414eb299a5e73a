"""Pydantic models for wallet endpoint request bodies."""

from typing import Optional

from pydantic import BaseModel, Field


class MintQuoteRequest(BaseModel):
    """Request body for POST /api/mint/quote and POST /api/mint/ecash."""

    amount: int = Field(..., description="Amount to mint", examples=[1000])


class MintProofsRequest(BaseModel):
    """Request body for POST /api/mint."""

    quote_id: str = Field(..., alias="quoteId", description="Mint quote ID")
    amount: int = Field(..., description="Amount the quote was created for")

    model_config = {"populate_by_name": True}


class SendEcashRequest(BaseModel):
    """Request body for POST /api/send."""

    amount: int = Field(..., description="Amount to send", examples=[500])
    mint_url: Optional[str] = Field(
        None,
        alias="mintUrl",
        description="Restrict proof selection to this mint",
    )

    model_config = {"populate_by_name": True}


class ReceiveEcashRequest(BaseModel):
    """Request body for POST /api/receive."""

    token: str = Field(..., description="Encoded cashu token")


class PayInvoiceRequest(BaseModel):
    """Request body for POST /api/pay."""

    invoice: str = Field(..., description="BOLT11 Lightning invoice")
