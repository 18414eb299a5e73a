"""
Portable token encoding.

Two serializations are understood, both a prefix followed by URL-safe base64
with the padding stripped:

- ``cashuB`` (V4): CBOR of ``{"m": url, "u": unit, "d": memo, "t": [...]}``
  where each ``t`` entry groups proofs of one keyset and ids, signatures and
  DLEQ fields travel as raw bytes.
- ``cashuA`` (V3): JSON of
  ``{"token": [{"mint": url, "proofs": [...]}], "unit": "sat", "memo": "..."}``.

New tokens are written as V4. V3 is only emitted when a proof carries a
keyset id or signature that is not hex, which V4 cannot represent.
"""

import base64
import binascii
import json
from typing import Any, Dict, List, Optional, Tuple

import cbor2
from pydantic import BaseModel, ValidationError

from ledger_engine.exceptions import InvalidTokenError
from ledger_engine.models import Proof

TOKEN_PREFIX_V3 = "cashuA"
TOKEN_PREFIX_V4 = "cashuB"
URI_SCHEME = "cashu:"


class DecodedToken(BaseModel):
    mint_url: str
    proofs: List[Proof]
    unit: str = "sat"
    memo: Optional[str] = None

    @property
    def amount(self) -> int:
        return sum(p.amount for p in self.proofs)


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _is_hex(value: Optional[str]) -> bool:
    if value is None:
        return True
    try:
        bytes.fromhex(value)
    except ValueError:
        return False
    return True


def _fits_v4(proof: Proof) -> bool:
    fields = [proof.keyset_id, proof.c]
    if proof.dleq:
        fields += [proof.dleq.e, proof.dleq.s, proof.dleq.r]
    return all(_is_hex(value) for value in fields)


def _proof_to_v4(proof: Proof) -> Dict[str, Any]:
    entry: Dict[str, Any] = {
        "a": proof.amount,
        "s": proof.secret,
        "c": bytes.fromhex(proof.c),
    }
    if proof.dleq:
        entry["d"] = {
            "e": bytes.fromhex(proof.dleq.e),
            "s": bytes.fromhex(proof.dleq.s),
        }
        if proof.dleq.r:
            entry["d"]["r"] = bytes.fromhex(proof.dleq.r)
    if proof.witness:
        entry["w"] = proof.witness.model_dump_json(exclude_none=True)
    return entry


def _encode_v4(
    mint_url: str, proofs: List[Proof], unit: str, memo: Optional[str]
) -> str:
    by_keyset: Dict[str, List[Dict[str, Any]]] = {}
    for proof in proofs:
        by_keyset.setdefault(proof.keyset_id, []).append(_proof_to_v4(proof))

    payload: Dict[str, Any] = {"m": mint_url, "u": unit}
    if memo:
        payload["d"] = memo
    payload["t"] = [
        {"i": bytes.fromhex(keyset_id), "p": entries}
        for keyset_id, entries in by_keyset.items()
    ]
    return TOKEN_PREFIX_V4 + _b64encode(cbor2.dumps(payload))


def _encode_v3(
    mint_url: str, proofs: List[Proof], unit: str, memo: Optional[str]
) -> str:
    payload: Dict[str, Any] = {
        "token": [
            {
                "mint": mint_url,
                "proofs": [
                    p.model_dump(by_alias=True, exclude_none=True) for p in proofs
                ],
            }
        ],
        "unit": unit,
    }
    if memo:
        payload["memo"] = memo

    raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return TOKEN_PREFIX_V3 + _b64encode(raw)


def encode_token(
    mint_url: str,
    proofs: List[Proof],
    unit: str = "sat",
    memo: Optional[str] = None,
    version: int = 4,
) -> str:
    """
    Serialize proofs from one mint into a token string.

    Args:
        mint_url: Mint the proofs were issued by
        proofs: Proofs to embed
        unit: Token unit
        memo: Optional note for the recipient
        version: 4 for ``cashuB``, 3 for the legacy ``cashuA`` format

    Returns:
        str: Token beginning with ``cashuB`` (or ``cashuA``)
    """
    if version == 4 and all(_fits_v4(p) for p in proofs):
        return _encode_v4(mint_url, proofs, unit, memo)
    return _encode_v3(mint_url, proofs, unit, memo)


def _hex_or_raw(value: Any) -> Any:
    return value.hex() if isinstance(value, bytes) else value


def _parse_v3(body: bytes) -> Tuple[Any, Any, Any, List[Any]]:
    try:
        payload = json.loads(body)
    except ValueError as e:
        raise InvalidTokenError(f"Token is not valid JSON: {e}") from e

    entries = payload.get("token") if isinstance(payload, dict) else None
    if not isinstance(entries, list) or not entries:
        raise InvalidTokenError("Token contains no entries")

    mints = []
    raw_proofs: List[Any] = []
    for entry in entries:
        if not isinstance(entry, dict) or not isinstance(entry.get("proofs"), list):
            raise InvalidTokenError("Token entry is malformed")
        mint = entry.get("mint")
        if mint not in mints:
            mints.append(mint)
        raw_proofs.extend(entry["proofs"])

    if len(mints) != 1:
        raise InvalidTokenError(
            "Tokens spanning several mints are not supported",
            details={"mints": [m for m in mints if isinstance(m, str)]},
        )
    return mints[0], payload.get("unit"), payload.get("memo"), raw_proofs


def _parse_v4(body: bytes) -> Tuple[Any, Any, Any, List[Any]]:
    try:
        payload = cbor2.loads(body)
    except (cbor2.CBORDecodeError, ValueError) as e:
        raise InvalidTokenError(f"Token is not valid CBOR: {e}") from e

    entries = payload.get("t") if isinstance(payload, dict) else None
    if not isinstance(entries, list) or not entries:
        raise InvalidTokenError("Token contains no entries")

    raw_proofs: List[Any] = []
    for entry in entries:
        if (
            not isinstance(entry, dict)
            or not isinstance(entry.get("i"), bytes)
            or not isinstance(entry.get("p"), list)
        ):
            raise InvalidTokenError("Token entry is malformed")

        keyset_id = entry["i"].hex()
        for item in entry["p"]:
            if not isinstance(item, dict):
                raise InvalidTokenError("Token entry is malformed")
            raw = {
                "id": keyset_id,
                "amount": item.get("a"),
                "secret": item.get("s"),
                "C": _hex_or_raw(item.get("c")),
            }
            dleq = item.get("d")
            if isinstance(dleq, dict):
                raw["dleq"] = {
                    key: _hex_or_raw(value)
                    for key, value in dleq.items()
                    if value is not None
                }
            elif dleq is not None:
                raw["dleq"] = dleq
            if item.get("w") is not None:
                raw["witness"] = item["w"]
            raw_proofs.append(raw)

    return payload.get("m"), payload.get("u"), payload.get("d"), raw_proofs


def decode_token(token: str) -> DecodedToken:
    """
    Parse a ``cashuB`` or ``cashuA`` token string.

    Raises:
        InvalidTokenError: If the string is not a well-formed single-mint token
    """
    text = (token or "").strip()
    if text.lower().startswith(URI_SCHEME):
        text = text[len(URI_SCHEME):]

    prefix = text[: len(TOKEN_PREFIX_V4)]
    if prefix == TOKEN_PREFIX_V4:
        parse = _parse_v4
    elif prefix == TOKEN_PREFIX_V3:
        parse = _parse_v3
    else:
        raise InvalidTokenError(
            "Unsupported token format",
            details={"prefix": prefix},
        )

    body = text[len(prefix):]
    body += "=" * (-len(body) % 4)
    try:
        raw = base64.urlsafe_b64decode(body)
    except (binascii.Error, ValueError) as e:
        raise InvalidTokenError(f"Token is not valid base64: {e}") from e

    mint_url, unit, memo, raw_proofs = parse(raw)
    if not isinstance(mint_url, str) or not mint_url:
        raise InvalidTokenError("Token does not name a mint")

    try:
        return DecodedToken(
            mint_url=mint_url,
            proofs=[Proof.model_validate(raw_proof) for raw_proof in raw_proofs],
            unit=unit or "sat",
            memo=memo,
        )
    except ValidationError as e:
        raise InvalidTokenError(f"Token proofs are malformed: {e.error_count()} errors") from e
