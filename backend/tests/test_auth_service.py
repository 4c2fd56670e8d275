# Overview: Pytest coverage for password handling, authentication and session tokens.

from datetime import timedelta

import pytest

from kasir.models import SessionToken
from kasir.services import auth_service, session_service
from kasir.services.auth_service import PasswordValidationError
from kasir.validation import ConflictError
from conftest import PASSWORD, TEST_BCRYPT_ROUNDS


class TestPasswords:
    @pytest.mark.parametrize("weak", ["short1", "allletters", "12345678"])
    def test_weak_passwords_rejected(self, weak):
        with pytest.raises(PasswordValidationError):
            auth_service.validate_password_strength(weak)

    def test_hash_and_verify(self):
        hashed = auth_service.hash_password(PASSWORD, rounds=TEST_BCRYPT_ROUNDS)
        assert hashed != PASSWORD
        assert auth_service.verify_password(PASSWORD, hashed)
        assert not auth_service.verify_password("Wrong1234", hashed)

    def test_malformed_hash_never_matches(self):
        assert auth_service.verify_password(PASSWORD, "not-a-bcrypt-hash") is False


class TestAuthenticate:
    def test_same_username_in_two_tenants(self, db_session, tenant_a, tenant_b):
        auth_service.create_user(tenant_a.id, "kasir", "kasir@a.local", PASSWORD, rounds=TEST_BCRYPT_ROUNDS)
        auth_service.create_user(tenant_b.id, "kasir", "kasir@b.local", PASSWORD, rounds=TEST_BCRYPT_ROUNDS)

        user = auth_service.authenticate("ROTI", "kasir", PASSWORD)
        assert user.tenant_id == tenant_b.id

    def test_duplicate_username_in_tenant(self, db_session, tenant_a, admin_a):
        with pytest.raises(ConflictError):
            auth_service.create_user(tenant_a.id, "admin_a", "other@a.local", PASSWORD, rounds=TEST_BCRYPT_ROUNDS)

    def test_failures_return_none(self, db_session, tenant_a, admin_a):
        assert auth_service.authenticate("NOPE", "admin_a", PASSWORD) is None
        assert auth_service.authenticate("KOPI", "ghost", PASSWORD) is None
        assert auth_service.authenticate("KOPI", "admin_a", "Wrong1234") is None

    def test_inactive_tenant_cannot_log_in(self, db_session, tenant_a, admin_a):
        tenant_a.is_active = False
        db_session.commit()
        assert auth_service.authenticate("KOPI", "admin_a", PASSWORD) is None


class TestSessions:
    def test_token_carries_tenant(self, db_session, admin_a):
        session, token = session_service.create_session(admin_a.id)

        assert session.token_hash == session_service.hash_token(token)
        context = session_service.validate_session(token)
        assert context.user.id == admin_a.id
        assert context.tenant_id == admin_a.tenant_id

    def test_expired_token_rejected(self, db_session, admin_a):
        _, token = session_service.create_session(admin_a.id, ttl=timedelta(seconds=-1))
        assert session_service.validate_session(token) is None

    def test_revoked_token_rejected(self, db_session, admin_a):
        _, token = session_service.create_session(admin_a.id)
        assert session_service.revoke_session(token) is True
        assert session_service.validate_session(token) is None
        assert session_service.revoke_session(token) is False

    def test_deactivated_user_session_revoked(self, db_session, admin_a):
        session, token = session_service.create_session(admin_a.id)
        admin_a.is_active = False
        db_session.commit()

        assert session_service.validate_session(token) is None
        assert db_session.get(SessionToken, session.id).is_revoked is True
