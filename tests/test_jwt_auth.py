"""
Access Token Tests.
"""

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from travelgate.jwt_auth import AuthenticationError, TokenService
from travelgate.models.enums import UserRole
from travelgate.models.service_models import ErrorCode


@pytest.fixture
def token_service(config):
    return TokenService(config)


class TestIssueAndVerify:

    def test_round_trip_yields_actor(self, token_service, people):
        token, expires_at = token_service.issue(people.approver)
        actor = token_service.verify(token)
        assert actor.id == people.approver.id
        assert actor.role == UserRole.APPROVER
        assert expires_at > datetime.now(timezone.utc)

    def test_claims_carry_email_and_expiry(self, token_service, config, people):
        token, _ = token_service.issue(people.requester)
        claims = token_service.decode(token)
        assert claims.email == people.requester.email
        assert claims.exp - claims.iat == timedelta(minutes=config.JWT_EXPIRE_MINUTES)

    def test_expired_token(self, token_service, config, people):
        past = datetime.now(timezone.utc) - timedelta(hours=2)
        token = jwt.encode(
            {
                "sub": people.requester.id,
                "email": people.requester.email,
                "role": "user",
                "iat": past,
                "exp": past + timedelta(minutes=5),
            },
            config.jwt_signing_key,
            algorithm="HS256",
        )
        with pytest.raises(AuthenticationError) as excinfo:
            token_service.verify(token)
        assert excinfo.value.code == ErrorCode.TOKEN_EXPIRED

    def test_foreign_signature(self, token_service, people):
        token = jwt.encode(
            {
                "sub": people.requester.id,
                "email": people.requester.email,
                "role": "admin",
                "iat": datetime.now(timezone.utc),
                "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
            },
            "somebody-elses-secret",
            algorithm="HS256",
        )
        with pytest.raises(AuthenticationError) as excinfo:
            token_service.verify(token)
        assert excinfo.value.code == ErrorCode.INVALID_TOKEN

    def test_tampered_payload(self, token_service, people):
        token, _ = token_service.issue(people.requester)
        header, payload, signature = token.split(".")
        forged = ".".join([header, payload[:-2] + ("AA" if payload[-2:] != "AA" else "BB"), signature])
        with pytest.raises(AuthenticationError):
            token_service.verify(forged)

    def test_unknown_role_claim(self, token_service, config, people):
        token = jwt.encode(
            {
                "sub": people.requester.id,
                "email": people.requester.email,
                "role": "superuser",
                "iat": datetime.now(timezone.utc),
                "exp": datetime.now(timezone.utc) + timedelta(minutes=5),
            },
            config.jwt_signing_key,
            algorithm="HS256",
        )
        with pytest.raises(AuthenticationError) as excinfo:
            token_service.verify(token)
        assert excinfo.value.code == ErrorCode.INVALID_TOKEN

    def test_garbage(self, token_service):
        with pytest.raises(AuthenticationError):
            token_service.verify("not.a.token")


class TestBearerHeader:

    def test_extracts_token(self):
        assert TokenService.extract_bearer("Bearer abc.def.ghi") == "abc.def.ghi"

    @pytest.mark.parametrize("header", [None, "", "Basic dXNlcjpwYXNz", "Bearer ", "bearer abc"])
    def test_rejects_other_headers(self, header):
        with pytest.raises(AuthenticationError) as excinfo:
            TokenService.extract_bearer(header)
        assert excinfo.value.code == ErrorCode.INVALID_TOKEN
