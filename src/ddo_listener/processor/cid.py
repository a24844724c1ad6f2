"""Piece CID codec - converts the event's binary payload to a CID and back.

The contract stores the piece commitment as a binary CID (typically CIDv1,
codec ``fil-commitment-unsealed``, multihash ``sha2-256-trunc254-padded``).
Decoding is strict: the payload must be exactly one well-formed CID, so that
``encode(decode(b)) == b`` always holds.
"""

from __future__ import annotations

from multiformats import CID, varint


class CidDecodeError(ValueError):
    """The payload is not a well-formed binary CID."""


def _as_bytes(payload: bytes | bytearray | str) -> bytes:
    if isinstance(payload, str):
        text = payload[2:] if payload.startswith(("0x", "0X")) else payload
        try:
            return bytes.fromhex(text)
        except ValueError as exc:
            raise CidDecodeError(f"payload is not valid hex: {exc}") from exc
    return bytes(payload)


def decode(payload: bytes | bytearray | str) -> CID:
    """Decode a binary CID. Accepts raw bytes or a 0x-prefixed hex string."""
    raw = _as_bytes(payload)
    if not raw:
        raise CidDecodeError("empty payload")
    try:
        cid = CID.decode(raw)
        # The multihash must declare exactly the digest length it carries
        _, _, rest = varint.decode_raw(cid.digest)
        digest_size, _, rest = varint.decode_raw(rest)
    except (ValueError, KeyError, TypeError, IndexError) as exc:
        raise CidDecodeError(f"malformed CID bytes: {exc}") from exc
    if len(rest) != digest_size:
        raise CidDecodeError(
            f"digest length mismatch: declared {digest_size}, got {len(rest)}"
        )
    if bytes(cid) != raw:
        raise CidDecodeError("payload has trailing or non-canonical bytes")
    return cid


def encode(cid: CID) -> bytes:
    """Binary form of a CID."""
    return bytes(cid)


def to_string(payload: bytes | bytearray | str) -> str:
    """Decode and render the canonical string form.

    CIDv1 is rendered in base32 (``b...``). CIDv0 has no multibase prefix and
    is always base58btc (``Qm...``).
    """
    cid = decode(payload)
    if cid.version == 0:
        return str(cid)
    return cid.encode("base32")
