"""
Tests for JWT roles and the feature toggle.
"""
import jwt

from config.settings import get_settings
from referral_engine.utils.feature_flags import FeatureToggle
from referral_engine.utils.security import (
    ANONYMOUS,
    Role,
    decode_access_token,
    issue_access_token,
    resolve_principal,
)


class TestRoles:
    """Tests for token issue and role resolution"""

    def test_admin_round_trip(self):
        token = issue_access_token("admin@fixlo", Role.ADMIN)

        principal = resolve_principal(token)

        assert principal.subject == "admin@fixlo"
        assert principal.role is Role.ADMIN
        assert principal.is_admin is True
        assert decode_access_token(token)["role"] == "admin"

    def test_missing_or_garbage_token_is_viewer(self):
        assert resolve_principal(None) is ANONYMOUS
        assert resolve_principal("not-a-jwt").role is Role.VIEWER

    def test_foreign_signature_is_viewer(self):
        token = jwt.encode({"sub": "x", "role": "admin"}, "another-secret-entirely-32-bytes!", algorithm="HS256")
        assert resolve_principal(token).is_admin is False

    def test_unknown_role_is_viewer(self):
        token = issue_access_token("someone")
        payload = decode_access_token(token)
        secret = get_settings().security.jwt_secret.get_secret_value()
        forged = jwt.encode({**payload, "role": "root"}, secret, algorithm="HS256")
        assert resolve_principal(forged).role is Role.VIEWER


class TestFeatureToggle:
    """Tests for FeatureToggle"""

    def test_explicit_value(self):
        toggle = FeatureToggle(enabled=False)
        assert toggle.enabled is False
        assert toggle.set(True, actor="admin") is True
        assert toggle.enabled is True

    def test_default_from_settings(self):
        assert FeatureToggle().enabled is True
