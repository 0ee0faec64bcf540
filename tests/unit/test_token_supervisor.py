"""Unit tests for access token supervision."""

from datetime import timedelta

import pytest

from mailsync.domain.entities.mail_account import MailAccount
from mailsync.domain.errors import AuthExpiredError

from tests.conftest import ACCOUNT_EMAIL, NOW


class TestEnsureFreshToken:
    """Tests for refresh-window handling."""

    def test_valid_token_used_without_refresh(self, make_tokens, account, fake_gmail):
        """Test a token outside the refresh window is returned as-is."""
        token = make_tokens().ensure_fresh_token(account)

        assert token.access_token == "tok-good"
        assert fake_gmail.token_requests == 0

    def test_expiring_token_refreshed_and_persisted(self, make_tokens, store, fake_gmail):
        """Test a token inside the window is refreshed and written back."""
        account = MailAccount(
            account_id="acct-9",
            email_address=ACCOUNT_EMAIL,
            access_token="tok-old",
            refresh_token="refresh-9",
            token_expiry=NOW + timedelta(minutes=5),
        )
        store.upsert_account(account)

        token = make_tokens().ensure_fresh_token(account)

        assert token.access_token == "tok-refreshed"
        assert token.expiry == NOW + timedelta(seconds=3600)
        assert fake_gmail.token_requests == 1
        saved = store.get_account("acct-9")
        assert saved.access_token == "tok-refreshed"
        assert saved.token_expiry == NOW + timedelta(seconds=3600)

        form = fake_gmail.requests[-1].content.decode()
        assert "grant_type=refresh_token" in form
        assert "refresh_token=refresh-9" in form

    def test_refreshed_token_cached_per_instance(self, make_tokens, store, fake_gmail):
        """Test a second call reuses the refreshed token."""
        account = MailAccount(account_id="acct-9", email_address=ACCOUNT_EMAIL, refresh_token="refresh-9")
        store.upsert_account(account)
        tokens = make_tokens()

        tokens.ensure_fresh_token(account)
        tokens.ensure_fresh_token(account)

        assert fake_gmail.token_requests == 1

    def test_missing_refresh_token(self, make_tokens):
        """Test an account without a refresh token cannot be refreshed."""
        account = MailAccount(account_id="acct-9", email_address=ACCOUNT_EMAIL)
        with pytest.raises(AuthExpiredError):
            make_tokens().ensure_fresh_token(account)

    def test_rejected_grant(self, make_tokens, fake_gmail):
        """Test a 4xx from the token endpoint surfaces as AuthExpiredError."""
        fake_gmail.token_status = 400
        account = MailAccount(account_id="acct-9", email_address=ACCOUNT_EMAIL, refresh_token="revoked")
        with pytest.raises(AuthExpiredError):
            make_tokens().ensure_fresh_token(account)


class TestForceRefresh:
    """Tests for refresh after a rejected token."""

    def test_stale_token_already_replaced(self, make_tokens, account, fake_gmail):
        """Test concurrent 401s with the same stale token refresh only once."""
        tokens = make_tokens()

        first = tokens.force_refresh(account, stale_token="tok-good")
        second = tokens.force_refresh(account, stale_token="tok-good")

        assert first.access_token == second.access_token == "tok-refreshed"
        assert fake_gmail.token_requests == 1
