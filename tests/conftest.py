"""Shared fixtures: config, mocked HTTP, and a small in-memory Constant Contact."""
import json
import re
import uuid

import pytest
import responses

from ccsync.cc_auth import ConstantContactOAuth, shared_oauth
from ccsync.cc_contacts import ConstantContactClient
from ccsync.config import CCConfig

TOKEN_URL = "https://authz.cc.test/oauth2/default/v1/token"
API_BASE = "https://api.cc.test/v3"
LIST_ID = "list-1"
API_KEY = "key-123"


class FakeConstantContact:
    """Stateful stand-in for the contacts API, wired into a RequestsMock."""

    def __init__(self, rsps: responses.RequestsMock, list_id: str = LIST_ID) -> None:
        self.list_id = list_id
        self.contacts: dict[str, dict] = {}
        self.fail_emails: set[str] = set()
        base = re.escape(API_BASE)
        rsps.add_callback(responses.GET, f"{API_BASE}/contacts", callback=self._list)
        rsps.add_callback(responses.POST, f"{API_BASE}/contacts", callback=self._create)
        rsps.add_callback(responses.PUT, re.compile(rf"{base}/contacts/[^/]+$"), callback=self._update)
        rsps.add_callback(
            responses.DELETE,
            re.compile(rf"{base}/contact_lists/[^/]+/contacts/[^/]+$"),
            callback=self._remove,
        )

    def seed(self, email: str, contact_id: str | None = None, lists: list[str] | None = None) -> str:
        contact_id = contact_id or uuid.uuid4().hex
        self.contacts[contact_id] = {
            "contact_id": contact_id,
            "email_address": {"address": email, "permission_to_send": "implicit"},
            "list_memberships": lists if lists is not None else [self.list_id],
        }
        return contact_id

    def on_list(self) -> list[dict]:
        return [c for c in self.contacts.values() if self.list_id in c.get("list_memberships", [])]

    def _reject(self, body):
        address = (body.get("email_address") or {}).get("address", "")
        if address.lower() in self.fail_emails:
            return (400, {}, json.dumps([{"error_key": "contacts.api.validation.error", "error_message": "bad email"}]))
        return None

    def _list(self, request):
        return (200, {}, json.dumps({"contacts": self.on_list()}))

    def _create(self, request):
        body = json.loads(request.body)
        rejected = self._reject(body)
        if rejected:
            return rejected
        address = body["email_address"]["address"]
        existing = next(
            (c for c in self.contacts.values() if c["email_address"]["address"].lower() == address.lower()),
            None,
        )
        contact_id = existing["contact_id"] if existing else uuid.uuid4().hex
        self.contacts[contact_id] = {**body, "contact_id": contact_id}
        return (201, {}, json.dumps(self.contacts[contact_id]))

    def _update(self, request):
        contact_id = request.url.rstrip("/").rsplit("/", 1)[-1]
        if contact_id not in self.contacts:
            return (404, {}, "Not Found")
        body = json.loads(request.body)
        rejected = self._reject(body)
        if rejected:
            return rejected
        email = body.get("email_address") or self.contacts[contact_id]["email_address"]
        self.contacts[contact_id] = {**body, "email_address": email, "contact_id": contact_id}
        return (200, {}, json.dumps(self.contacts[contact_id]))

    def _remove(self, request):
        contact_id = request.url.rstrip("/").rsplit("/", 1)[-1]
        contact = self.contacts.get(contact_id)
        if contact is None:
            return (404, {}, "Not Found")
        contact["list_memberships"] = [x for x in contact.get("list_memberships", []) if x != self.list_id]
        return (204, {}, "")


def api_calls(rsps: responses.RequestsMock) -> list:
    return [c for c in rsps.calls if c.request.url.startswith(API_BASE)]


def token_calls(rsps: responses.RequestsMock) -> list:
    return [c for c in rsps.calls if c.request.url.startswith(TOKEN_URL)]


@pytest.fixture(autouse=True)
def _clear_shared_oauth():
    shared_oauth.cache_clear()
    yield
    shared_oauth.cache_clear()


@pytest.fixture
def cc_config():
    return CCConfig(
        api_key=API_KEY,
        refresh_token="refresh-abc",
        list_id=LIST_ID,
        token_url=TOKEN_URL,
        api_base=API_BASE,
    )


@pytest.fixture
def rsps():
    with responses.RequestsMock(assert_all_requests_are_fired=False) as r:
        yield r


@pytest.fixture
def token_ok(rsps):
    rsps.add(responses.POST, TOKEN_URL, json={"access_token": "access-1", "token_type": "Bearer", "expires_in": 86400})
    return rsps


@pytest.fixture
def fake_cc(token_ok):
    return FakeConstantContact(token_ok)


@pytest.fixture
def cc_client():
    oauth = ConstantContactOAuth(api_key=API_KEY, refresh_token="refresh-abc", token_url=TOKEN_URL)
    return ConstantContactClient(oauth, LIST_ID, api_base=API_BASE)
