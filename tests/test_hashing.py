"""Tests for snapshot sealing helpers."""

import pytest


class TestSignSnapshot:
    def test_signature_is_hex_sha256(self, quote_secret):
        from staybook.infra.hashing import sign_snapshot

        signature = sign_snapshot({"a": 1})
        assert len(signature) == 64
        int(signature, 16)

    def test_key_order_does_not_matter(self, quote_secret):
        from staybook.infra.hashing import sign_snapshot

        assert sign_snapshot({"a": 1, "b": 2}) == sign_snapshot({"b": 2, "a": 1})

    def test_value_change_changes_signature(self, quote_secret):
        from staybook.infra.hashing import sign_snapshot

        assert sign_snapshot({"amount": 100}) != sign_snapshot({"amount": 101})

    def test_different_secret_different_signature(self, monkeypatch):
        from staybook.infra.hashing import sign_snapshot

        monkeypatch.setenv("QUOTE_SIGNING_SECRET", "secret-one")
        first = sign_snapshot({"a": 1})
        monkeypatch.setenv("QUOTE_SIGNING_SECRET", "secret-two")
        assert sign_snapshot({"a": 1}) != first

    def test_missing_secret_raises(self, monkeypatch):
        from staybook.infra.hashing import sign_snapshot

        monkeypatch.delenv("QUOTE_SIGNING_SECRET", raising=False)
        with pytest.raises(RuntimeError, match="QUOTE_SIGNING_SECRET"):
            sign_snapshot({"a": 1})


class TestVerifySnapshot:
    def test_roundtrip(self, quote_secret):
        from staybook.infra.hashing import sign_snapshot, verify_snapshot

        snapshot = {"unit_id": "u1", "final_amount": 2200}
        assert verify_snapshot(snapshot, sign_snapshot(snapshot)) is True

    def test_wrong_signature(self, quote_secret):
        from staybook.infra.hashing import verify_snapshot

        assert verify_snapshot({"a": 1}, "0" * 64) is False

    def test_empty_signature(self, quote_secret):
        from staybook.infra.hashing import verify_snapshot

        assert verify_snapshot({"a": 1}, "") is False
