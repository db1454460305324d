"""Tests for auth/dependencies.py: the request authenticator and role gate.

Covers:
- authenticate(): valid token -> Identity; missing / tampered / expired /
  wrong-issuer tokens -> UnauthorizedError with the matching reason
- token lookup order: cookie first, then Authorization: Bearer
- require_role(): 403 with both role names on mismatch, 401 without a token
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi import Depends, FastAPI
from fastapi.testclient import TestClient

from auth.dependencies import RequestAuthenticator, get_current_identity, require_role
from auth.errors import AuthError, UnauthorizedError
from auth.models import Identity, TokenClaims
from auth.tokens import TokenCodec
from tests.conftest import TEST_SECRET, FakeClock

ISSUER = "QuestRider"


def _seal(codec: TokenCodec, clock: FakeClock, *, role: str = "student", issuer: str = ISSUER, ttl=timedelta(minutes=15)) -> str:
    claims = TokenClaims(
        user_id="u1",
        email="a@x.com",
        role=role,
        expires_at=clock.now + ttl,
        issuer=issuer,
    )
    return codec.seal(claims.to_payload())


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec.from_secret(TEST_SECRET)


@pytest.fixture
def gate(codec: TokenCodec, clock: FakeClock) -> RequestAuthenticator:
    return RequestAuthenticator(codec, ISSUER, clock=clock)


class TestAuthenticate:
    def test_valid_token_yields_identity(self, gate, codec, clock) -> None:
        identity = gate.authenticate(_seal(codec, clock, role="educator"))
        assert identity == Identity(user_id="u1", email="a@x.com", role="educator")

    @pytest.mark.parametrize("token", [None, ""])
    def test_missing_token(self, gate, token) -> None:
        with pytest.raises(UnauthorizedError) as exc_info:
            gate.authenticate(token)
        assert exc_info.value.reason == "missing"
        assert exc_info.value.message == "No access token found"

    def test_tampered_token(self, gate, codec, clock) -> None:
        token = _seal(codec, clock)
        header, rest = token.split(".", 1)
        tampered = header + "." + rest[::-1]
        with pytest.raises(UnauthorizedError) as exc_info:
            gate.authenticate(tampered)
        assert exc_info.value.reason == "invalid"

    def test_token_from_other_key(self, gate, clock) -> None:
        other = TokenCodec.from_secret("another-secret-that-is-long-enough-abcdefgh")
        with pytest.raises(UnauthorizedError) as exc_info:
            gate.authenticate(_seal(other, clock))
        assert exc_info.value.reason == "invalid"

    def test_expired_token(self, gate, codec, clock) -> None:
        token = _seal(codec, clock)
        clock.advance(minutes=15)
        assert gate.authenticate(token).user_id == "u1"
        clock.advance(microseconds=1)
        with pytest.raises(UnauthorizedError) as exc_info:
            gate.authenticate(token)
        assert exc_info.value.reason == "expired"
        assert exc_info.value.message == "Expired access token"

    def test_wrong_issuer(self, gate, codec, clock) -> None:
        with pytest.raises(UnauthorizedError) as exc_info:
            gate.authenticate(_seal(codec, clock, issuer="Elsewhere"))
        assert exc_info.value.reason == "wrong_issuer"


def _protected_app(gate: RequestAuthenticator) -> FastAPI:
    """Minimal app exercising the dependencies the way a course API would."""
    app = FastAPI()
    app.state.authenticator = gate

    @app.exception_handler(AuthError)
    async def handler(request, exc: AuthError):
        from fastapi.responses import JSONResponse

        return JSONResponse(status_code=exc.status_code, content={"code": exc.code, "message": exc.message})

    @app.get("/me")
    def me(identity: Identity = Depends(get_current_identity)) -> dict:
        return {"user_id": identity.user_id, "role": identity.role}

    @app.get("/admin")
    def admin(identity: Identity = Depends(require_role("admin"))) -> dict:
        return {"ok": True}

    return app


class TestDependencies:
    def test_cookie_token_accepted(self, gate, codec, clock) -> None:
        client = TestClient(_protected_app(gate))
        client.cookies.set("access_token", _seal(codec, clock))
        resp = client.get("/me")
        assert resp.status_code == 200
        assert resp.json() == {"user_id": "u1", "role": "student"}

    def test_bearer_header_accepted(self, gate, codec, clock) -> None:
        client = TestClient(_protected_app(gate))
        resp = client.get("/me", headers={"Authorization": f"Bearer {_seal(codec, clock)}"})
        assert resp.status_code == 200

    def test_cookie_wins_over_header(self, gate, codec, clock) -> None:
        client = TestClient(_protected_app(gate))
        client.cookies.set("access_token", _seal(codec, clock, role="educator"))
        resp = client.get("/me", headers={"Authorization": f"Bearer {_seal(codec, clock, role='admin')}"})
        assert resp.json()["role"] == "educator"

    def test_no_token_is_401(self, gate) -> None:
        resp = TestClient(_protected_app(gate)).get("/me")
        assert resp.status_code == 401
        assert resp.json()["code"] == "unauthorized"

    def test_role_mismatch_is_403_naming_both_roles(self, gate, codec, clock) -> None:
        client = TestClient(_protected_app(gate))
        resp = client.get("/admin", headers={"Authorization": f"Bearer {_seal(codec, clock, role='student')}"})
        assert resp.status_code == 403
        assert resp.json() == {
            "code": "forbidden",
            "message": "Required role was admin, but user role is student",
        }

    def test_role_match_passes(self, gate, codec, clock) -> None:
        client = TestClient(_protected_app(gate))
        resp = client.get("/admin", headers={"Authorization": f"Bearer {_seal(codec, clock, role='admin')}"})
        assert resp.status_code == 200

    def test_role_gate_without_token_is_401(self, gate) -> None:
        resp = TestClient(_protected_app(gate)).get("/admin")
        assert resp.status_code == 401
