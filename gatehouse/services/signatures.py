"""ed25519 checks for identity keys."""

from __future__ import annotations

import nacl.exceptions
import nacl.signing

from gatehouse.domain.errors import InvalidPublicKeyError


def load_verify_key(public_key_hex: str) -> nacl.signing.VerifyKey:
    try:
        return nacl.signing.VerifyKey(bytes.fromhex(public_key_hex))
    except (ValueError, TypeError, nacl.exceptions.CryptoError) as exc:
        raise InvalidPublicKeyError("public key is not a valid ed25519 key") from exc


def verify_signature(public_key_hex: str, message: str, signature_hex: str) -> bool:
    """True when ``signature_hex`` is ``public_key_hex`` signing ``message``."""
    verify_key = load_verify_key(public_key_hex)
    try:
        verify_key.verify(message.encode("utf-8"), bytes.fromhex(signature_hex))
    except (ValueError, TypeError, nacl.exceptions.BadSignatureError):
        return False
    return True
