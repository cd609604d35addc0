"""
Identity tokens issued by the authentication provider.
A verified token yields the actor uid used in request contexts.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from cryptography.exceptions import InvalidSignature

from ..config import DEFAULT_TOKEN_TTL_SECONDS
from ..errors import KeypairError, TokenError
from ..utils.canonical_json import canonicalize_bytes
from ..utils.time import format_timestamp, is_expired, parse_timestamp, timestamp_after
from .keypair import Keypair, key_id_for, load_public_key


@dataclass(frozen=True)
class IdentityToken:
    """
    Signed assertion that a uid is authenticated.

    Attributes:
        uid: Authenticated user id
        key_id: Id of the signing key
        issued_at: Issue timestamp
        expires_at: Expiry timestamp
        signature: Ed25519 signature over the other fields
    """
    uid: str
    key_id: str
    issued_at: str
    expires_at: str
    signature: bytes

    def get_payload(self) -> Dict[str, Any]:
        """Get the signed payload (everything except signature)."""
        return {
            'uid': self.uid,
            'key_id': self.key_id,
            'issued_at': self.issued_at,
            'expires_at': self.expires_at,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.get_payload(),
            'signature': self.signature.hex(),
        }


def issue_token(
    keypair: Keypair,
    uid: str,
    ttl_seconds: float = DEFAULT_TOKEN_TTL_SECONDS,
    issued_at: Optional[str] = None,
) -> IdentityToken:
    """
    Issue a token for a uid.

    Args:
        keypair: Provider signing key
        uid: User id to assert
        ttl_seconds: Token lifetime
        issued_at: Issue timestamp (defaults to now)

    Returns:
        IdentityToken
    """
    if not isinstance(uid, str) or not uid:
        raise TokenError("Token uid must be a non-empty string")

    if issued_at is None:
        issued_at = timestamp_after(0)
    payload = {
        'uid': uid,
        'key_id': keypair.get_key_id(),
        'issued_at': issued_at,
        'expires_at': timestamp_after(ttl_seconds, start=issued_at),
    }
    return IdentityToken(signature=keypair.sign(canonicalize_bytes(payload)), **payload)


def verify_token(
    token: IdentityToken,
    public_key_bytes: bytes,
    at: Optional[datetime] = None,
) -> str:
    """
    Verify a token and return its uid.

    Args:
        token: Token to verify
        public_key_bytes: Provider public key
        at: Reference time for expiry (defaults to now)

    Returns:
        Authenticated uid

    Raises:
        TokenError: If the token is signed by another key, tampered or expired
    """
    try:
        public_key = load_public_key(public_key_bytes)
    except KeypairError as e:
        raise TokenError(f"Cannot verify token: {e}") from e

    if token.key_id != key_id_for(public_key_bytes):
        raise TokenError(f"Token signed by unknown key {token.key_id[:16]}")

    try:
        public_key.verify(token.signature, canonicalize_bytes(token.get_payload()))
    except InvalidSignature as e:
        raise TokenError("Invalid token signature") from e

    try:
        expired = is_expired(token.expires_at, at)
    except ValueError as e:
        raise TokenError(f"Malformed expiry: {e}") from e
    if expired:
        raise TokenError(f"Token expired at {token.expires_at}")

    return token.uid


def parse_token(token_dict: Dict[str, Any]) -> IdentityToken:
    """
    Parse a token from its dictionary form.

    Raises:
        TokenError: If fields are missing or malformed
    """
    required = ['uid', 'key_id', 'issued_at', 'expires_at', 'signature']
    for field in required:
        if field not in token_dict:
            raise TokenError(f"Missing required field: {field}")

    try:
        signature = bytes.fromhex(token_dict['signature'])
    except (TypeError, ValueError) as e:
        raise TokenError(f"Invalid signature format: {e}") from e

    for field in ('issued_at', 'expires_at'):
        try:
            format_timestamp(parse_timestamp(token_dict[field]))
        except ValueError as e:
            raise TokenError(f"Invalid {field}: {e}") from e

    return IdentityToken(
        uid=token_dict['uid'],
        key_id=token_dict['key_id'],
        issued_at=token_dict['issued_at'],
        expires_at=token_dict['expires_at'],
        signature=signature,
    )
