"""
Authentication and session token tests.
"""

from datetime import timedelta

import pytest

from posledger.errors import BadRequestError, ConflictError
from posledger.extensions import db
from posledger.models import SessionToken
from posledger.models.auth import ROLE_MANAGER
from posledger.services import auth_service, session_service
from posledger.services.auth_service import PasswordValidationError, validate_password_strength

DEFAULT_PASSWORD = "Password123!"


@pytest.mark.parametrize(
    "password",
    ["Sh0rt!", "alllowercase1!", "ALLUPPERCASE1!", "NoDigitsHere!", "NoSpecial123"],
)
def test_weak_passwords_rejected(password):
    with pytest.raises(PasswordValidationError):
        validate_password_strength(password)


def test_strong_password_accepted():
    validate_password_strength("Str0ng!Pass")


class TestCreateUser:
    def test_create_and_authenticate(self, db_session):
        user = auth_service.create_user(
            "mgr", "Mgr@Shop.test", "Sup3r!Secret", role=ROLE_MANAGER, full_name="Manager"
        )
        assert user.email == "mgr@shop.test"
        assert user.password_hash != "Sup3r!Secret"

        assert auth_service.authenticate("mgr", "Sup3r!Secret").id == user.id
        assert auth_service.authenticate("mgr@shop.test", "Sup3r!Secret").id == user.id
        assert auth_service.authenticate("mgr", "wrong") is None
        assert db.session.get(type(user), user.id).last_login_at is not None

    def test_duplicate_username_is_conflict(self, db_session, cashier_user):
        with pytest.raises(ConflictError):
            auth_service.create_user(cashier_user.username, "other@shop.test", DEFAULT_PASSWORD)

    @pytest.mark.parametrize(
        "username, email, role",
        [("", "a@b.test", "CASHIER"), ("someone", "  ", "CASHIER"), ("someone", "a@b.test", "OWNER")],
    )
    def test_invalid_fields_are_bad_request(self, db_session, username, email, role):
        with pytest.raises(BadRequestError):
            auth_service.create_user(username, email, DEFAULT_PASSWORD, role=role)

    def test_inactive_user_cannot_authenticate(self, db_session, make_user):
        make_user("ghost", is_active=False)
        assert auth_service.authenticate("ghost", DEFAULT_PASSWORD) is None


class TestSessions:
    def test_only_hash_is_stored(self, db_session, cashier_user):
        session, token = session_service.create_session(cashier_user.id)
        assert len(token) == 64
        assert session.token_hash == session_service.hash_token(token)
        assert session.token_hash != token

    def test_validate_and_revoke(self, db_session, cashier_user):
        _, token = session_service.create_session(cashier_user.id)

        ctx = session_service.validate_session(token)
        assert ctx is not None
        assert ctx.user.id == cashier_user.id

        assert session_service.revoke_session(token) is True
        assert session_service.validate_session(token) is None
        assert session_service.revoke_session(token) is False

    def test_unknown_token_is_invalid(self, db_session):
        assert session_service.validate_session("f" * 64) is None

    def test_idle_timeout_revokes(self, db_session, cashier_user):
        session, token = session_service.create_session(cashier_user.id)
        session.last_used_at = session.last_used_at - timedelta(days=1)
        db.session.commit()

        assert session_service.validate_session(token) is None
        assert db.session.get(SessionToken, session.id).revoked_reason == "Idle timeout"

    def test_absolute_timeout(self, db_session, cashier_user):
        session, token = session_service.create_session(cashier_user.id)
        session.expires_at = session.created_at - timedelta(seconds=1)
        db.session.commit()

        assert session_service.validate_session(token) is None

    def test_deactivated_user_loses_session(self, db_session, cashier_user):
        _, token = session_service.create_session(cashier_user.id)
        cashier_user.is_active = False
        db.session.commit()

        assert session_service.validate_session(token) is None

    def test_revoke_all_user_sessions(self, db_session, cashier_user):
        _, first = session_service.create_session(cashier_user.id)
        _, second = session_service.create_session(cashier_user.id)

        assert session_service.revoke_all_user_sessions(cashier_user.id) == 2
        assert session_service.validate_session(first) is None
        assert session_service.validate_session(second) is None
