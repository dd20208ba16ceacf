"""Hosted identity provider adapter.

Person records (teachers, students, parents) are paired with a login-capable
user at the identity provider; the provider-assigned user id becomes the
primary key of the person row.  This module only talks to the provider and
classifies its failures; turning those into user-facing text is the caller's
job.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import requests

log = logging.getLogger(__name__)


class ProviderErrorKind(str, Enum):
    DUPLICATE_IDENTIFIER = "duplicate_identifier"
    BREACHED_CREDENTIAL = "breached_credential"
    WEAK_CREDENTIAL = "weak_credential"
    NOT_FOUND = "not_found"
    TRANSIENT = "transient"
    UNKNOWN = "unknown"


_CODE_KINDS = {
    "form_identifier_exists": ProviderErrorKind.DUPLICATE_IDENTIFIER,
    "form_password_pwned": ProviderErrorKind.BREACHED_CREDENTIAL,
    "form_password_length_too_short": ProviderErrorKind.WEAK_CREDENTIAL,
    "form_password_validation_failed": ProviderErrorKind.WEAK_CREDENTIAL,
    "form_password_not_strong_enough": ProviderErrorKind.WEAK_CREDENTIAL,
    "form_identifier_not_found": ProviderErrorKind.NOT_FOUND,
    "resource_not_found": ProviderErrorKind.NOT_FOUND,
}


class ProviderError(Exception):
    """Provider rejected the call or could not be reached."""

    def __init__(self, kind: ProviderErrorKind, codes: list[str] | None = None, status: int | None = None):
        self.kind = kind
        self.codes = list(codes or [])
        self.status = status
        super().__init__(f"{kind.value} (status={status}, codes={self.codes})")


def classify(status: int | None, codes: list[str]) -> ProviderErrorKind:
    for code in codes:
        kind = _CODE_KINDS.get(code)
        if kind:
            return kind
    if status == 404:
        return ProviderErrorKind.NOT_FOUND
    if status is not None and (status == 429 or status >= 500):
        return ProviderErrorKind.TRANSIENT
    return ProviderErrorKind.UNKNOWN


@dataclass
class IdentityProfile:
    username: str
    first_name: str
    last_name: str
    role: str
    password: Optional[str] = None
    email: Optional[str] = None


@dataclass
class IdentityUser:
    id: str
    username: str
    role: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    email: Optional[str] = None
    created_at: Optional[int] = None  # epoch millis, as the provider reports it
    raw: dict = field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, data: dict) -> "IdentityUser":
        emails = data.get("email_addresses") or []
        meta = data.get("public_metadata") or {}
        return cls(
            id=data["id"],
            username=data.get("username") or "",
            role=meta.get("role"),
            first_name=data.get("first_name"),
            last_name=data.get("last_name"),
            email=(emails[0].get("email_address") if emails else None),
            created_at=data.get("created_at"),
            raw=data,
        )


class HttpIdentityBackend:
    """REST client for the provider's backend API (bearer secret key)."""

    def __init__(self, base_url: str, secret_key: str, timeout: float = 10.0,
                 session: requests.Session | None = None):
        self.base_url = base_url.rstrip("/")
        self.secret_key = secret_key
        self.timeout = timeout
        self.http = session or requests.Session()

    def _request(self, method: str, path: str, *, json: Any = None, params: dict | None = None,
                 timeout: float | None = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            resp = self.http.request(
                method, url, json=json, params=params,
                headers={"Authorization": f"Bearer {self.secret_key}"},
                timeout=timeout or self.timeout,
            )
        except requests.RequestException as ex:
            log.warning("identity provider unreachable: %s %s: %s", method, path, ex)
            raise ProviderError(ProviderErrorKind.TRANSIENT) from ex

        if resp.status_code >= 400:
            codes = _error_codes(resp)
            raise ProviderError(classify(resp.status_code, codes), codes, resp.status_code)
        if resp.status_code == 204 or not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as ex:
            log.warning("identity provider sent a non-JSON body: %s %s", method, path)
            raise ProviderError(ProviderErrorKind.UNKNOWN, status=resp.status_code) from ex

    def create_user(self, profile: IdentityProfile, *, timeout: float | None = None) -> IdentityUser:
        body: dict[str, Any] = {
            "username": profile.username,
            "password": profile.password,
            "first_name": profile.first_name,
            "last_name": profile.last_name,
            "public_metadata": {"role": profile.role},
        }
        if profile.email:
            body["email_address"] = [profile.email]
        return IdentityUser.from_payload(self._request("POST", "/users", json=body, timeout=timeout))

    def get_user(self, user_id: str, *, timeout: float | None = None) -> IdentityUser:
        return IdentityUser.from_payload(self._request("GET", f"/users/{user_id}", timeout=timeout))

    def find_by_username(self, username: str, *, timeout: float | None = None) -> IdentityUser | None:
        rows = self._request("GET", "/users", params={"username": username}, timeout=timeout) or []
        return IdentityUser.from_payload(rows[0]) if rows else None

    def update_user(self, user_id: str, profile: IdentityProfile, *, timeout: float | None = None) -> IdentityUser:
        # email у провайдера задаётся только при создании
        body: dict[str, Any] = {
            "username": profile.username,
            "first_name": profile.first_name,
            "last_name": profile.last_name,
        }
        if profile.password:
            body["password"] = profile.password
        return IdentityUser.from_payload(self._request("PATCH", f"/users/{user_id}", json=body, timeout=timeout))

    def delete_user(self, user_id: str, *, timeout: float | None = None) -> None:
        self._request("DELETE", f"/users/{user_id}", timeout=timeout)

    def verify_password(self, user_id: str, password: str, *, timeout: float | None = None) -> bool:
        try:
            data = self._request("POST", f"/users/{user_id}/verify_password",
                                 json={"password": password}, timeout=timeout)
        except ProviderError as pe:
            if "incorrect_password" in pe.codes or pe.status in (400, 422):
                return False
            raise
        return bool(data and data.get("verified"))


def _error_codes(resp: requests.Response) -> list[str]:
    try:
        payload = resp.json()
    except ValueError:
        return []
    errors = payload.get("errors") if isinstance(payload, dict) else None
    if not isinstance(errors, list):
        return []
    return [e.get("code") for e in errors if isinstance(e, dict) and e.get("code")]


class IdentityProvider:
    """Flask extension wrapping the identity backend.

    Exposes provision/update/deprovision in provider terms.  ``backend`` can be
    swapped (tests install an in-memory one).
    """

    def __init__(self, app=None, backend=None):
        self.backend = backend
        if app is not None:
            self.init_app(app)

    def init_app(self, app) -> None:
        self.backend = HttpIdentityBackend(
            base_url=app.config.get("IDENTITY_API_URL", ""),
            secret_key=app.config.get("IDENTITY_SECRET_KEY", ""),
            timeout=float(app.config.get("IDENTITY_TIMEOUT", 10)),
        )
        app.extensions["identity"] = self

    def provision_identity(self, profile: IdentityProfile, *, timeout: float | None = None) -> str:
        user = self.backend.create_user(profile, timeout=timeout)
        log.info("identity provisioned: id=%s role=%s", user.id, profile.role)
        return user.id

    def update_identity(self, user_id: str, profile: IdentityProfile, *, timeout: float | None = None) -> None:
        self.backend.update_user(user_id, profile, timeout=timeout)

    def deprovision_identity(self, user_id: str, *, timeout: float | None = None) -> None:
        self.backend.delete_user(user_id, timeout=timeout)
        log.info("identity deprovisioned: id=%s", user_id)

    def get_identity(self, user_id: str, *, timeout: float | None = None) -> IdentityUser:
        return self.backend.get_user(user_id, timeout=timeout)

    def find_by_username(self, username: str, *, timeout: float | None = None) -> IdentityUser | None:
        return self.backend.find_by_username(username, timeout=timeout)

    def verify_password(self, user_id: str, password: str, *, timeout: float | None = None) -> bool:
        return self.backend.verify_password(user_id, password, timeout=timeout)
