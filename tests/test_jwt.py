import time

import pytest

from civicdesk.jwt_utils import JWTError, decode, encode, issue_token_pair, select_signing_secret


@pytest.fixture()
def secrets():
    return ["alpha_secret", "beta_secret"]


def _claims(**over):
    now = int(time.time())
    base = {"sub": 7, "role": "user", "jti": "j1", "iat": now, "exp": now + 600, "type": "access", "iss": "civicdesk", "aud": "api"}
    base.update(over)
    return base


def test_pair_decodes_with_expected_types(secrets):
    access, refresh, jti = issue_token_pair(user_id=7, role="user", secret=secrets[0])
    a = decode(access, secret=secrets[0], issuer="civicdesk", audience="api")
    r = decode(refresh, secret=secrets[0], issuer="civicdesk", audience="api")
    assert a["type"] == "access" and r["type"] == "refresh"
    assert r["jti"] == jti
    assert a["jti"] != jti
    assert a["sub"] == r["sub"] == 7


def test_rotation_accepts_old_and_new(secrets):
    old, _, _ = issue_token_pair(user_id=1, role="admin", secret=secrets[1])
    new, _, _ = issue_token_pair(user_id=1, role="admin", secret=secrets[0])
    assert decode(old, secret=secrets[0], secrets_list=secrets)["sub"] == 1
    assert decode(new, secret=secrets[0], secrets_list=secrets)["sub"] == 1
    with pytest.raises(JWTError):
        decode(old, secret=secrets[0])


@pytest.mark.parametrize(
    "claims,kwargs",
    [
        (_claims(iss="other"), {"issuer": "civicdesk"}),
        (_claims(aud="web"), {"audience": "api"}),
        (_claims(role="root"), {}),
        (_claims(sub=True), {}),
        (_claims(iat=int(time.time()) + 4000, exp=int(time.time()) + 8000), {}),
        (_claims(exp=int(time.time()) - 3600), {}),
        (_claims(iat=int(time.time()) - 7200), {"max_age": 60}),
        (_claims(type="id"), {}),
        (_claims(sub="7"), {}),
    ],
)
def test_claim_failures(claims, kwargs):
    token = encode(claims, secret="k", ttl=600)
    with pytest.raises(JWTError):
        decode(token, secret="k", **kwargs)


def test_malformed_and_revoked():
    with pytest.raises(JWTError):
        decode("abc", secret="k")
    token = encode(_claims(jti="gone"), secret="k", ttl=600)
    with pytest.raises(JWTError):
        decode(token, secret="k", is_revoked=lambda jti: jti == "gone")
    assert decode(token, secret="k", is_revoked=lambda jti: False)["jti"] == "gone"


def test_select_signing_secret():
    assert select_signing_secret("p", ["a"]) == "p"
    assert select_signing_secret(None, ["", "a"]) == "a"
    with pytest.raises(JWTError):
        select_signing_secret(None, [])


def test_rejection_reason_is_reported():
    token = encode(_claims(exp=int(time.time()) - 3600), secret="k", ttl=600)
    with pytest.raises(JWTError) as exc:
        decode(token, secret="k")
    assert exc.value.reason == "exp"
    with pytest.raises(JWTError) as exc:
        decode(token, secret="other")
    assert exc.value.reason == "bad_signature"


def test_max_age_only_applies_to_access_tokens():
    old = int(time.time()) - 7200
    token = encode(_claims(type="refresh", iat=old), secret="k", ttl=600)
    assert decode(token, secret="k", max_age=60)["type"] == "refresh"
