"""
Ed25519 signing keys of the authentication provider.
Only the public half is needed to verify identity tokens.
"""

from pathlib import Path
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives import serialization

from ..config import KEY_SIZE_BYTES, PUBLIC_KEY_LENGTH
from ..errors import KeypairError
from ..utils.hashing import hash_bytes


class Keypair:
    """
    Token signing keypair with key-id derivation.
    """

    def __init__(self, private_key: Ed25519PrivateKey):
        """
        Initialize keypair from private key.

        Args:
            private_key: Ed25519 private key object
        """
        if not isinstance(private_key, Ed25519PrivateKey):
            raise KeypairError("Invalid private key type")

        self._private_key = private_key
        self._public_key = private_key.public_key()

    @classmethod
    def generate(cls) -> 'Keypair':
        """Generate a new signing keypair."""
        return cls(Ed25519PrivateKey.generate())

    @classmethod
    def from_private_bytes(cls, private_bytes: bytes) -> 'Keypair':
        """
        Load keypair from raw private key bytes.

        Args:
            private_bytes: 32-byte Ed25519 private key

        Raises:
            KeypairError: If bytes are invalid
        """
        if len(private_bytes) != KEY_SIZE_BYTES:
            raise KeypairError(f"Private key must be {KEY_SIZE_BYTES} bytes, got {len(private_bytes)}")

        try:
            return cls(Ed25519PrivateKey.from_private_bytes(private_bytes))
        except ValueError as e:
            raise KeypairError(f"Invalid private key bytes: {e}") from e

    @classmethod
    def load_from_file(cls, path: str) -> 'Keypair':
        """
        Load keypair from a PEM file.

        Raises:
            KeypairError: If the file cannot be read or holds another key type
        """
        try:
            pem_data = Path(path).read_bytes()
        except OSError as e:
            raise KeypairError(f"Cannot read key file: {e}") from e

        try:
            private_key = serialization.load_pem_private_key(pem_data, password=None)
        except (TypeError, ValueError) as e:
            raise KeypairError(f"Invalid PEM data: {e}") from e
        if not isinstance(private_key, Ed25519PrivateKey):
            raise KeypairError("PEM does not contain Ed25519 key")
        return cls(private_key)

    def save_to_file(self, path: str):
        """
        Save private key to PEM file (owner read/write only).

        Raises:
            KeypairError: If file cannot be written
        """
        pem_data = self._private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        try:
            key_path = Path(path)
            key_path.write_bytes(pem_data)
            key_path.chmod(0o600)
        except OSError as e:
            raise KeypairError(f"Cannot write key file: {e}") from e

    def get_public_bytes(self) -> bytes:
        """
        Export public key as raw bytes.

        Returns:
            32-byte public key
        """
        return self._public_key.public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw,
        )

    def get_key_id(self) -> str:
        """
        Derive the key id carried in issued tokens.
        Key ID = SHA-256(public_key_bytes)

        Returns:
            64-character hex string
        """
        return key_id_for(self.get_public_bytes())

    def sign(self, payload: bytes) -> bytes:
        return self._private_key.sign(payload)


def key_id_for(public_bytes: bytes) -> str:
    return hash_bytes(public_bytes)


def load_public_key(public_bytes: bytes) -> Ed25519PublicKey:
    """
    Load Ed25519 public key from raw bytes.

    Args:
        public_bytes: 32-byte public key

    Returns:
        Ed25519PublicKey object

    Raises:
        KeypairError: If bytes are invalid
    """
    if len(public_bytes) != PUBLIC_KEY_LENGTH:
        raise KeypairError(f"Public key must be {PUBLIC_KEY_LENGTH} bytes, got {len(public_bytes)}")

    try:
        return Ed25519PublicKey.from_public_bytes(public_bytes)
    except ValueError as e:
        raise KeypairError(f"Invalid public key bytes: {e}") from e
