"""Shared pytest fixtures for Staybook tests."""
import sys
sys.dont_write_bytecode = True

import pytest  # noqa: E402


@pytest.fixture(autouse=True)
def _reset_oidc_jwks_cache():
    """Reset the module-level JWKS cache around every test.

    A JWKS cached by an earlier test would not match the keys the next test
    signs with and would surface as intermittent 401s.
    """
    import staybook.api.auth as auth_module

    auth_module.reset_jwks_cache()
    yield
    auth_module.reset_jwks_cache()


@pytest.fixture
def quote_secret(monkeypatch):
    """Set QUOTE_SIGNING_SECRET for snapshot sealing."""
    monkeypatch.setenv("QUOTE_SIGNING_SECRET", "test_quote_secret_for_hmac")
