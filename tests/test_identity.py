"""
Tests for provider keypairs and identity tokens.
"""

import dataclasses
import os
import tempfile
from datetime import datetime, timedelta, timezone

import pytest

from docrules import DocRulesEngine, Keypair, issue_token, verify_token
from docrules.config import KEY_ID_LENGTH, REASON_ALLOWED, REASON_PREDICATE_FALSE
from docrules.errors import KeypairError, TokenError
from docrules.identity import key_id_for, load_public_key, parse_token


class TestKeypair:
    """Test signing key management."""

    def test_key_id_derived_from_public_key(self):
        keypair = Keypair.generate()
        key_id = keypair.get_key_id()

        assert len(key_id) == KEY_ID_LENGTH
        assert key_id == key_id_for(keypair.get_public_bytes())

    def test_distinct_keys(self):
        assert Keypair.generate().get_key_id() != Keypair.generate().get_key_id()

    def test_from_private_bytes(self):
        seed = bytes(range(32))
        assert Keypair.from_private_bytes(seed).get_key_id() == Keypair.from_private_bytes(seed).get_key_id()

    def test_wrong_private_key_length(self):
        with pytest.raises(KeypairError):
            Keypair.from_private_bytes(b"short")

    def test_wrong_public_key_length(self):
        with pytest.raises(KeypairError):
            load_public_key(b"\x00" * 31)

    def test_file_round_trip(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            key_path = os.path.join(tmpdir, "issuer.pem")
            keypair = Keypair.generate()
            keypair.save_to_file(key_path)

            assert Keypair.load_from_file(key_path).get_key_id() == keypair.get_key_id()

    def test_missing_key_file(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with pytest.raises(KeypairError):
                Keypair.load_from_file(os.path.join(tmpdir, "missing.pem"))


class TestTokens:
    """Test token issue and verification."""

    def test_verify_returns_uid(self):
        issuer = Keypair.generate()
        token = issue_token(issuer, "alice")

        assert verify_token(token, issuer.get_public_bytes()) == "alice"
        assert token.key_id == issuer.get_key_id()

    def test_tampered_uid_rejected(self):
        issuer = Keypair.generate()
        token = dataclasses.replace(issue_token(issuer, "alice"), uid="mallory")

        with pytest.raises(TokenError):
            verify_token(token, issuer.get_public_bytes())

    def test_other_issuer_rejected(self):
        token = issue_token(Keypair.generate(), "alice")

        with pytest.raises(TokenError):
            verify_token(token, Keypair.generate().get_public_bytes())

    def test_forged_key_id_rejected(self):
        issuer = Keypair.generate()
        forger = Keypair.generate()
        token = dataclasses.replace(issue_token(forger, "alice"), key_id=issuer.get_key_id())

        with pytest.raises(TokenError):
            verify_token(token, issuer.get_public_bytes())

    def test_expired_rejected(self):
        issuer = Keypair.generate()
        token = issue_token(issuer, "alice", ttl_seconds=60)
        later = datetime.now(timezone.utc) + timedelta(hours=1)

        with pytest.raises(TokenError, match="expired"):
            verify_token(token, issuer.get_public_bytes(), at=later)

    def test_empty_uid_rejected(self):
        with pytest.raises(TokenError):
            issue_token(Keypair.generate(), "")

    def test_dict_round_trip(self):
        issuer = Keypair.generate()
        token = issue_token(issuer, "alice")

        parsed = parse_token(token.to_dict())
        assert parsed == token
        assert verify_token(parsed, issuer.get_public_bytes()) == "alice"

    def test_parse_missing_field(self):
        token_dict = issue_token(Keypair.generate(), "alice").to_dict()
        del token_dict['signature']

        with pytest.raises(TokenError):
            parse_token(token_dict)

    def test_parse_bad_signature_encoding(self):
        token_dict = issue_token(Keypair.generate(), "alice").to_dict()
        token_dict['signature'] = "not-hex"

        with pytest.raises(TokenError):
            parse_token(token_dict)


class TestTokenAuthorization:
    """Test authorizing requests from identity tokens."""

    def test_token_actor(self):
        issuer = Keypair.generate()
        with DocRulesEngine(issuer_public_key=issuer.get_public_bytes()) as engine:
            token = issue_token(issuer, "alice")

            decision = engine.authorize_token(token, "update", "users/alice",
                                              resource={"codinome": "Fox"}, proposed={"codinome": "Wolf"})
            assert decision.reason == REASON_ALLOWED

            decision = engine.authorize_token(token.to_dict(), "update", "users/bob",
                                              resource={}, proposed={})
            assert decision.reason == REASON_PREDICATE_FALSE

    def test_missing_token_is_unauthenticated(self):
        issuer = Keypair.generate()
        with DocRulesEngine(issuer_public_key=issuer.get_public_bytes()) as engine:
            decision = engine.authorize_token(None, "read", "shop_items/hat", resource={})
            assert not decision.allow
            assert engine.get_decision_log()[0]['actor'] is None

    def test_invalid_token_raises(self):
        issuer = Keypair.generate()
        with DocRulesEngine(issuer_public_key=issuer.get_public_bytes()) as engine:
            token = issue_token(Keypair.generate(), "alice")

            with pytest.raises(TokenError):
                engine.authorize_token(token, "read", "users/alice")
            assert engine.get_decision_log() == []

    def test_no_issuer_configured(self):
        with DocRulesEngine() as engine:
            with pytest.raises(TokenError):
                engine.authorize_token(issue_token(Keypair.generate(), "alice"), "read", "users/alice")
