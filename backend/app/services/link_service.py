"""
services/link_service.py — Login link issuing and the signature scheme.

A login link is {base_url}/{endpoint}/{public}. Issuing one stores a magic
record in the transient store under "autologin/{public}":

    {"user_id", "private", "redirect", "time"}

Public token:
  HMAC-SHA256 of "{user_id}|{redirect}" keyed with SECRET_KEY, hex encoded.
  Deterministic, so re-issuing for the same (user, redirect) finds the live
  record and only refreshes its TTL instead of minting a new link.

Signature:
  "{public}|{endpoint}|{user_id}", or "{public}|{endpoint}|{hostname}|{user_id}"
  when AUTOLOGIN_VALIDATE_DOMAIN is on. There is no server-side key in it.
  Only its bcrypt hash (`private`) is stored, and it is only ever checked with
  bcrypt.checkpw, never compared by equality.

  bcrypt reads at most 72 bytes of input, and a signature is longer than
  that. The signature is first reduced to base64(sha256(signature)), 44 bytes,
  so every byte of it counts.

Layer rules:
  - No imports from routes
  - No use of flask.request, flask.g, or HTTP status codes
  - Callers own the transaction: functions flush, routes / CLI commit
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import time
from dataclasses import dataclass
from urllib.parse import urlparse

import bcrypt
from sqlalchemy.orm import Session

from backend.app.schemas.magic_record_schema import (
    MalformedRecordError,
    decode_record,
    encode_record,
)
from backend.app.services import auth_service, transient_service

TRANSIENT_PREFIX = "autologin/"
DEFAULT_LINK_TTL = 30 * 86400


@dataclass(frozen=True)
class LinkSettings:
    """Everything the issuer and the verifier need from the deployment."""

    base_url: str
    endpoint: str | None
    secret_key: str
    default_ttl: int = DEFAULT_LINK_TTL
    check_signature: bool = True
    validate_domain: bool = False
    bcrypt_rounds: int = 12

    @classmethod
    def from_config(cls, config, endpoint: str | None) -> LinkSettings:
        return cls(
            base_url=config["AUTOLOGIN_BASE_URL"].rstrip("/"),
            endpoint=endpoint,
            secret_key=config["SECRET_KEY"],
            default_ttl=config.get("AUTOLOGIN_DEFAULT_TTL", DEFAULT_LINK_TTL),
            check_signature=config.get("AUTOLOGIN_CHECK_SIGNATURE", True),
            validate_domain=config.get("AUTOLOGIN_VALIDATE_DOMAIN", False),
            bcrypt_rounds=config.get("BCRYPT_LOG_ROUNDS", 12),
        )

    @property
    def hostname(self) -> str:
        """Host part of the base URL, lower-cased, without port."""
        return (urlparse(self.base_url).hostname or "").lower()


class NotInstalledError(RuntimeError):
    """Raised when a link is requested before the endpoint exists."""


# ── Pure helpers ───────────────────────────────────────────────────────────

def record_key(public: str) -> str:
    return f"{TRANSIENT_PREFIX}{public}"


def normalize_redirect(redirect: str | None, base_url: str) -> str:
    """
    Makes `redirect` relative to the deployment.

    A leading `base_url` is stripped only where it ends at a path boundary
    ("/", "?", "#" or end of string); the result always starts with "/".
    Absolute URLs on other hosts are not rejected, they simply end up as a
    path under the deployment.
    """
    redirect = (redirect or "").strip()
    base_url = base_url.rstrip("/")
    if base_url and redirect.startswith(base_url):
        rest = redirect[len(base_url):]
        if rest == "" or rest[0] in "/?#":
            redirect = rest
    if not redirect.startswith("/"):
        redirect = "/" + redirect
    return redirect


def public_token(user_id: int, redirect: str, secret_key: str) -> str:
    return hmac.new(
        secret_key.encode("utf-8"),
        f"{user_id}|{redirect}".encode("utf-8"),
        hashlib.sha256,
    ).hexdigest()


def signature(
        public: str,
        endpoint: str,
        user_id: int,
        hostname: str | None = None,
) -> str:
    """Builds the un-stored signature string. `hostname` enables domain binding."""
    if hostname is None:
        return f"{public}|{endpoint}|{user_id}"
    return f"{public}|{endpoint}|{hostname}|{user_id}"


def _prehash(value: str) -> bytes:
    return base64.b64encode(hashlib.sha256(value.encode("utf-8")).digest())


def hash_signature(value: str, rounds: int = 12) -> str:
    """One-way salted hash of a signature string (bcrypt)."""
    return bcrypt.hashpw(_prehash(value), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_signature(value: str, private: str) -> bool:
    """
    Checks `value` against a stored hash with bcrypt.checkpw.

    A stored hash bcrypt cannot parse counts as a mismatch.
    """
    try:
        return bcrypt.checkpw(_prehash(value), private.encode("utf-8"))
    except ValueError:
        return False


def build_url(base_url: str, endpoint: str, public: str) -> str:
    return f"{base_url.rstrip('/')}/{endpoint}/{public}"


def _require_endpoint(settings: LinkSettings) -> str:
    if not settings.endpoint:
        raise NotInstalledError(
            "AutoLogin is not installed: no endpoint. Run `flask autologin install`."
        )
    return settings.endpoint


def _signature_for(public: str, user_id: int, settings: LinkSettings, hostname: str) -> str:
    return signature(
        public,
        _require_endpoint(settings),
        user_id,
        hostname if settings.validate_domain else None,
    )


# ── Public service functions ───────────────────────────────────────────────

def issue_link(
        user_id: int,
        session: Session,
        settings: LinkSettings,
        redirect: str = "/",
        ttl: int | None = None,
) -> str:
    """
    Returns a login link for `user_id` that redirects to `redirect`.

    If a live record already exists for this (user, redirect) pair and still
    verifies against the current endpoint and hostname, the same serialised
    record is stored again with a fresh TTL: same link, same hash. Otherwise
    a new record is signed and stored over it.

    Raises:
      NotInstalledError — no endpoint installed.
      ValueError        — ttl is not positive.
    """
    endpoint = _require_endpoint(settings)
    if ttl is None:
        ttl = settings.default_ttl

    redirect = normalize_redirect(redirect, settings.base_url)
    public = public_token(user_id, redirect, settings.secret_key)
    key = record_key(public)

    existing = transient_service.get_transient(key, session)
    if existing is not None:
        try:
            decoded = decode_record(existing)
        except MalformedRecordError:
            existing = None
        else:
            # Signed for an older endpoint or hostname setting.
            if decoded["user_id"] != user_id or not record_is_valid(
                public, decoded, settings, settings.hostname
            ):
                existing = None

    if existing is not None:
        transient_service.set_transient(key, existing, ttl, session)
    else:
        private = hash_signature(
            _signature_for(public, user_id, settings, settings.hostname),
            settings.bcrypt_rounds,
        )
        record = {
            "user_id": user_id,
            "private": private,
            "redirect": redirect,
            "time": int(time.time()),
        }
        transient_service.set_transient(key, encode_record(record), ttl, session)

    return build_url(settings.base_url, endpoint, public)


def record_is_valid(
        public: str,
        record: dict,
        settings: LinkSettings,
        hostname: str,
) -> bool:
    """True when the stored hash matches the signature recomputed for this link."""
    return verify_signature(
        _signature_for(public, record["user_id"], settings, hostname),
        record["private"],
    )


def find_existing_link(
        user_id: int,
        session: Session,
        settings: LinkSettings,
) -> str | None:
    """
    Returns the URL of a live link already issued to `user_id`, or None.

    A candidate only counts if its user still resolves and its signature
    verifies against the current endpoint (and hostname, with domain binding).
    """
    endpoint = _require_endpoint(settings)
    if auth_service.resolve_user(user_id, session) is None:
        return None

    for key, raw in transient_service.live_transients(TRANSIENT_PREFIX, session):
        try:
            record = decode_record(raw)
        except MalformedRecordError:
            continue
        if record["user_id"] != user_id:
            continue
        public = key[len(TRANSIENT_PREFIX):]
        if record_is_valid(public, record, settings, settings.hostname):
            return build_url(settings.base_url, endpoint, public)

    return None
