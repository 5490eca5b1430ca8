"""
tests/integration/test_login_links.py — Following login links through the app.

Flow covered:
  issue → GET /{endpoint}/{public} → session cookie + 302 → GET /api/v1/auth/me

Failure kinds (rendered as a 403 page, routing stops):
  INVALID_LINK  — unknown, tampered, expired or malformed record
  INVALID_USER  — account deleted, or record without user_id
  INVALID_AUTH  — signature mismatch (only when AUTOLOGIN_CHECK_SIGNATURE)

Pass-through (not an error, normal routing continues → 404 here):
  - wrong endpoint, wrong number of segments, nothing installed
"""

from __future__ import annotations

import json
import time

import pytest

from backend.app.errors import ErrorCode
from backend.app.extensions import db
from backend.app.models.transient import Transient
from backend.app.services import transient_service


COOKIE = "autologin_auth"


def _session_cookie_set(resp) -> bool:
    return any(h.startswith(f"{COOKIE}=") for h in resp.headers.getlist("Set-Cookie"))


# ═══════════════════════════════════════════════════════════════════════════
# Successful login
# ═══════════════════════════════════════════════════════════════════════════

class TestEndToEnd:

    def test_link_authenticates_and_redirects(self, client, install, make_user, issue, path_of):
        endpoint = install()
        make_user(42)

        url = issue(42, "/account")
        assert url.startswith(f"http://localhost/{endpoint}/")

        resp = client.get(path_of(url))
        assert resp.status_code == 302
        assert resp.headers["Location"] == "http://localhost/account"
        assert _session_cookie_set(resp)

        me = client.get("/api/v1/auth/me")
        assert me.status_code == 200
        assert me.get_json()["data"]["id"] == 42

    def test_link_is_reusable_until_expiry(self, app, client, install, make_user, issue, path_of):
        install()
        make_user(42)
        url = issue(42, "/account")

        first = app.test_client().get(path_of(url))
        second = app.test_client().get(path_of(url))

        assert first.status_code == 302
        assert second.status_code == 302
        assert second.headers["Location"] == "http://localhost/account"

    def test_default_redirect_is_site_root(self, client, install, make_user, issue, path_of):
        install()
        make_user(7)

        resp = client.get(path_of(issue(7)))

        assert resp.status_code == 302
        assert resp.headers["Location"] == "http://localhost/"

    def test_trailing_slash_is_accepted(self, client, install, make_user, issue, path_of):
        install()
        make_user(7)

        resp = client.get(path_of(issue(7, "/x")) + "/")

        assert resp.status_code == 302


# ═══════════════════════════════════════════════════════════════════════════
# Issuance properties visible through the store
# ═══════════════════════════════════════════════════════════════════════════

class TestIssuance:

    def test_reissue_returns_same_link_and_same_hash(self, install, make_user, issue, stored_record):
        install()
        make_user(3)

        url1 = issue(3, "/dash")
        raw1 = stored_record(url1)
        url2 = issue(3, "/dash")
        raw2 = stored_record(url2)

        assert url1 == url2
        assert raw1 == raw2
        assert json.loads(raw1)["private"] == json.loads(raw2)["private"]

    def test_reissue_refreshes_ttl(self, app, install, make_user, issue, monkeypatch):
        install()
        make_user(3)
        start = int(time.time())

        issue(3, "/dash", ttl=100)
        monkeypatch.setattr(transient_service, "_now", lambda: start + 90)
        issue(3, "/dash", ttl=100)

        with app.app_context():
            row = db.session.query(Transient).one()
            assert row.expires_at == start + 190

    def test_different_redirects_give_different_links(self, install, make_user, issue):
        install()
        make_user(3)

        assert issue(3, "/a") != issue(3, "/b")

    def test_absolute_redirect_is_stored_relative(self, install, make_user, issue, stored_record):
        install()
        make_user(3)

        url = issue(3, "http://localhost/dash")

        assert json.loads(stored_record(url))["redirect"] == "/dash"
        assert url == issue(3, "/dash")

    def test_reissue_after_endpoint_rotation_logs_in(
            self, client, runner, install, make_user, issue, path_of,
    ):
        install()
        make_user(7)
        old = issue(7, "/x")
        runner.invoke(args=["autologin", "uninstall", "--yes"])
        runner.invoke(args=["autologin", "install"])

        new = issue(7, "/x")
        resp = client.get(path_of(new))

        assert new != old
        assert resp.status_code == 302
        assert resp.headers["Location"] == "http://localhost/x"

    def test_reissue_after_enabling_domain_binding_logs_in(
            self, app, client, install, make_user, issue, path_of, monkeypatch,
    ):
        install()
        make_user(7)
        issue(7, "/x")
        monkeypatch.setitem(app.config, "AUTOLOGIN_VALIDATE_DOMAIN", True)

        url = issue(7, "/x")
        resp = client.get(path_of(url))

        assert resp.status_code == 302


# ═══════════════════════════════════════════════════════════════════════════
# Failures
# ═══════════════════════════════════════════════════════════════════════════

class TestFailures:

    def _assert_failure(self, resp, code: str) -> None:
        assert resp.status_code == 403
        assert resp.mimetype == "text/html"
        assert f'data-error-code="{code}"' in resp.get_data(as_text=True)
        assert not _session_cookie_set(resp)

    def test_unknown_token_is_invalid_link(self, client, install):
        endpoint = install()

        resp = client.get(f"/{endpoint}/deadbeef")

        self._assert_failure(resp, ErrorCode.INVALID_LINK)
        assert "invalid or has expired" in resp.get_data(as_text=True)

    def test_expired_link_is_invalid_link(self, client, install, make_user, issue, path_of, monkeypatch):
        install()
        make_user(5)
        url = issue(5, "/x", ttl=60)
        later = int(time.time()) + 61
        monkeypatch.setattr(transient_service, "_now", lambda: later)

        resp = client.get(path_of(url))

        self._assert_failure(resp, ErrorCode.INVALID_LINK)

    def test_tampered_token_never_succeeds(self, client, install, make_user, issue, path_of):
        install()
        make_user(5)
        path = path_of(issue(5, "/x"))
        last = path[-1]
        tampered = path[:-1] + ("0" if last != "0" else "1")

        resp = client.get(tampered)

        self._assert_failure(resp, ErrorCode.INVALID_LINK)

    def test_record_signed_for_another_user_is_invalid_auth(
            self, client, install, make_user, issue, path_of, stored_record, overwrite_record,
    ):
        install()
        make_user(5)
        make_user(6)
        url = issue(5, "/x")
        record = json.loads(stored_record(url))
        record["user_id"] = 6
        overwrite_record(url, json.dumps(record))

        resp = client.get(path_of(url))

        self._assert_failure(resp, ErrorCode.INVALID_AUTH)
        assert "authentication failed" in resp.get_data(as_text=True)

    def test_signature_check_can_be_disabled(
            self, app, client, install, make_user, issue, path_of, stored_record, overwrite_record,
            monkeypatch,
    ):
        install()
        make_user(5)
        make_user(6)
        url = issue(5, "/x")
        record = json.loads(stored_record(url))
        record["user_id"] = 6
        overwrite_record(url, json.dumps(record))
        monkeypatch.setitem(app.config, "AUTOLOGIN_CHECK_SIGNATURE", False)

        resp = client.get(path_of(url))

        assert resp.status_code == 302
        assert client.get("/api/v1/auth/me").get_json()["data"]["id"] == 6

    def test_deleted_user_is_invalid_user(self, client, install, make_user, delete_user, issue, path_of):
        install()
        make_user(8)
        url = issue(8, "/x")
        delete_user(8)

        resp = client.get(path_of(url))

        self._assert_failure(resp, ErrorCode.INVALID_USER)

    def test_record_without_user_is_invalid_user(
            self, client, install, make_user, issue, path_of, overwrite_record,
    ):
        install()
        make_user(8)
        url = issue(8, "/x")
        overwrite_record(url, json.dumps({"private": "x", "redirect": "/x", "time": 0}))

        resp = client.get(path_of(url))

        self._assert_failure(resp, ErrorCode.INVALID_USER)

    def test_garbage_record_is_invalid_link(self, client, install, make_user, issue, path_of, overwrite_record):
        install()
        make_user(8)
        url = issue(8, "/x")
        overwrite_record(url, "{not json")

        resp = client.get(path_of(url))

        self._assert_failure(resp, ErrorCode.INVALID_LINK)

    def test_custom_message_resolver(self, app, client, install, monkeypatch):
        endpoint = install()
        monkeypatch.setattr(
            app.extensions["autologin"],
            "message_resolver",
            lambda code: f"Custom <{code}>",
        )

        resp = client.get(f"/{endpoint}/deadbeef")

        assert resp.status_code == 403
        assert "Custom &lt;INVALID_LINK&gt;" in resp.get_data(as_text=True)


# ═══════════════════════════════════════════════════════════════════════════
# Domain binding
# ═══════════════════════════════════════════════════════════════════════════

class TestDomainBinding:

    def test_same_host_succeeds(self, app, client, install, make_user, issue, path_of, monkeypatch):
        monkeypatch.setitem(app.config, "AUTOLOGIN_VALIDATE_DOMAIN", True)
        install()
        make_user(9)
        url = issue(9, "/x")

        resp = client.get(path_of(url), headers={"Host": "localhost:5000"})

        assert resp.status_code == 302

    def test_other_host_is_invalid_auth(self, app, client, install, make_user, issue, path_of, monkeypatch):
        monkeypatch.setitem(app.config, "AUTOLOGIN_VALIDATE_DOMAIN", True)
        install()
        make_user(9)
        url = issue(9, "/x")

        resp = client.get(path_of(url), headers={"Host": "staging.example.com"})

        assert resp.status_code == 403
        assert ErrorCode.INVALID_AUTH in resp.get_data(as_text=True)

    def test_links_issued_without_binding_fail_once_binding_is_on(
            self, app, client, install, make_user, issue, path_of, monkeypatch,
    ):
        install()
        make_user(9)
        url = issue(9, "/x")
        monkeypatch.setitem(app.config, "AUTOLOGIN_VALIDATE_DOMAIN", True)

        resp = client.get(path_of(url))

        assert resp.status_code == 403


# ═══════════════════════════════════════════════════════════════════════════
# Pass-through
# ═══════════════════════════════════════════════════════════════════════════

class TestPassThrough:

    def test_wrong_endpoint_is_not_handled(self, client, install, make_user, issue, path_of):
        install()
        make_user(4)
        public = path_of(issue(4, "/x")).rsplit("/", 1)[1]

        resp = client.get(f"/wrong-endpoint/{public}")

        assert resp.status_code == 404
        assert not _session_cookie_set(resp)
        assert "Location" not in resp.headers

    @pytest.mark.parametrize("path", ["/", "/one", "/a/b/c"])
    def test_other_shapes_are_not_handled(self, client, install, path):
        install()

        resp = client.get(path)

        assert resp.status_code == 404

    def test_nothing_installed_passes_through(self, client):
        resp = client.get("/abcd1234/deadbeef")

        assert resp.status_code == 404

    def test_uninstall_disables_outstanding_links(
            self, app, client, install, make_user, issue, path_of, runner,
    ):
        install()
        make_user(4)
        url = issue(4, "/x")

        result = runner.invoke(args=["autologin", "uninstall", "--yes"])
        assert result.exit_code == 0

        resp = client.get(path_of(url))
        assert resp.status_code == 404
