"""NIP-01 event identity and BIP-340 Schnorr signatures."""

import hashlib
import json

from coincurve import PrivateKey, PublicKeyXOnly

from rate_publisher.core.errors import TransportError
from rate_publisher.core.types import ReplaceableEvent, SignedEvent


def public_key_hex(private_key: bytes) -> str:
    """Return the x-only public key for a 32-byte secret."""

    return PublicKeyXOnly.from_secret(private_key).format().hex()


def event_id(event: ReplaceableEvent, pubkey: str) -> str:
    """Hash the canonical serialization relays use to identify an event."""

    serialized = json.dumps(
        [0, pubkey, event.created_at, event.kind, [list(tag) for tag in event.tags], event.content],
        ensure_ascii=False,
        separators=(",", ":"),
    )
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()


def sign_event(event: ReplaceableEvent, private_key: bytes) -> SignedEvent:
    """Attach id, pubkey and signature to an unsigned event."""

    try:
        pubkey = public_key_hex(private_key)
        digest = event_id(event, pubkey)
        sig = PrivateKey(private_key).sign_schnorr(bytes.fromhex(digest))
    except (TypeError, ValueError) as exc:
        raise TransportError(f"failed to sign event: {exc}") from exc

    return SignedEvent(
        id=digest,
        pubkey=pubkey,
        sig=sig.hex(),
        kind=event.kind,
        created_at=event.created_at,
        tags=event.tags,
        content=event.content,
    )
