"""Identity token handling for docrules."""

from .keypair import Keypair, key_id_for, load_public_key
from .token import IdentityToken, issue_token, parse_token, verify_token

__all__ = [
    'Keypair',
    'key_id_for',
    'load_public_key',
    'IdentityToken',
    'issue_token',
    'parse_token',
    'verify_token',
]
