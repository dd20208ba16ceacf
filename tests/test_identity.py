from __future__ import annotations
import json

import pytest
import requests

from identity import (
    HttpIdentityBackend, IdentityProfile, ProviderError, ProviderErrorKind, classify,
)


class FakeResponse:
    def __init__(self, status_code: int, payload=None):
        self.status_code = status_code
        self._payload = payload
        self.content = b"" if payload is None else json.dumps(payload).encode()

    def json(self):
        if self._payload is None:
            raise ValueError("no body")
        return self._payload


class FakeSession:
    """Records requests; replies from a queue of FakeResponse or exceptions."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.sent = []

    def request(self, method, url, **kwargs):
        self.sent.append((method, url, kwargs))
        reply = self.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply


def _backend(*replies):
    session = FakeSession(*replies)
    return HttpIdentityBackend("https://idp.test/v1/", "sk_test", timeout=2.5, session=session), session


PROFILE = IdentityProfile(username="stud1", password="correct-horse-1", first_name="Ann",
                          last_name="Lee", role="student", email="ann@school.test")


@pytest.mark.parametrize("status,codes,kind", [
    (422, ["form_identifier_exists"], ProviderErrorKind.DUPLICATE_IDENTIFIER),
    (422, ["form_password_pwned"], ProviderErrorKind.BREACHED_CREDENTIAL),
    (422, ["form_password_length_too_short"], ProviderErrorKind.WEAK_CREDENTIAL),
    (404, [], ProviderErrorKind.NOT_FOUND),
    (429, [], ProviderErrorKind.TRANSIENT),
    (503, [], ProviderErrorKind.TRANSIENT),
    (400, ["something_new"], ProviderErrorKind.UNKNOWN),
])
def test_classify(status, codes, kind):
    assert classify(status, codes) is kind


def test_create_user_sends_profile_and_parses_id():
    backend, session = _backend(FakeResponse(200, {
        "id": "user_abc", "username": "stud1", "created_at": 1700000000000,
        "public_metadata": {"role": "student"},
        "email_addresses": [{"email_address": "ann@school.test"}],
    }))
    user = backend.create_user(PROFILE)
    assert user.id == "user_abc" and user.role == "student" and user.email == "ann@school.test"

    method, url, kwargs = session.sent[0]
    assert (method, url) == ("POST", "https://idp.test/v1/users")
    assert kwargs["headers"]["Authorization"] == "Bearer sk_test"
    assert kwargs["timeout"] == 2.5
    assert kwargs["json"]["public_metadata"] == {"role": "student"}
    assert kwargs["json"]["email_address"] == ["ann@school.test"]


def test_error_body_is_classified():
    backend, _ = _backend(FakeResponse(422, {"errors": [{"code": "form_password_pwned", "message": "x"}]}))
    with pytest.raises(ProviderError) as ei:
        backend.create_user(PROFILE)
    assert ei.value.kind is ProviderErrorKind.BREACHED_CREDENTIAL
    assert ei.value.codes == ["form_password_pwned"]
    assert ei.value.status == 422


@pytest.mark.parametrize("exc", [
    requests.Timeout("slow"),
    requests.ConnectionError("down"),
    requests.exceptions.ChunkedEncodingError("connection broken mid-body"),
    requests.TooManyRedirects("redirect loop"),
    requests.exceptions.MissingSchema("no scheme in ''"),
])
def test_network_failures_are_transient(exc):
    backend, _ = _backend(exc)
    with pytest.raises(ProviderError) as ei:
        backend.delete_user("user_abc", timeout=0.5)
    assert ei.value.kind is ProviderErrorKind.TRANSIENT


def test_update_sends_neither_missing_password_nor_email():
    backend, session = _backend(FakeResponse(200, {"id": "user_abc", "username": "stud1"}))
    profile = IdentityProfile(username="stud1", first_name="A", last_name="L", role="student",
                              email="new@school.test")
    backend.update_user("user_abc", profile)
    method, url, kwargs = session.sent[0]
    assert method == "PATCH" and url.endswith("/users/user_abc")
    assert "password" not in kwargs["json"]
    assert "email_address" not in kwargs["json"]


def test_find_by_username_empty_list():
    backend, session = _backend(FakeResponse(200, []))
    assert backend.find_by_username("nobody") is None
    assert session.sent[0][2]["params"] == {"username": "nobody"}


def test_verify_password_wrong_is_false():
    backend, _ = _backend(
        FakeResponse(200, {"verified": True}),
        FakeResponse(422, {"errors": [{"code": "incorrect_password"}]}),
    )
    assert backend.verify_password("user_abc", "right") is True
    assert backend.verify_password("user_abc", "wrong") is False


def test_delete_no_content():
    backend, _ = _backend(FakeResponse(204))
    assert backend.delete_user("user_abc") is None


class GarbledResponse(FakeResponse):
    """2xx reply whose body is not JSON (proxy error page and the like)."""

    def __init__(self, status_code: int = 200):
        super().__init__(status_code)
        self.content = b"<html>Bad Gateway</html>"


def test_non_json_success_body_is_unknown():
    backend, _ = _backend(GarbledResponse(200))
    with pytest.raises(ProviderError) as ei:
        backend.get_user("user_abc")
    assert ei.value.kind is ProviderErrorKind.UNKNOWN
    assert ei.value.status == 200


def test_empty_base_url_is_transient():
    backend = HttpIdentityBackend("", "sk_test")
    with pytest.raises(ProviderError) as ei:
        backend.delete_user("user_abc")
    assert ei.value.kind is ProviderErrorKind.TRANSIENT
