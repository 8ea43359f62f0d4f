"""Unit tests for ccsync.cc_contacts."""
import json

import pytest
import responses

from ccsync.cc_contacts import client_from_config
from ccsync.errors import ExternalAPIError

from conftest import API_BASE, API_KEY, LIST_ID, api_calls, token_calls


def test_requests_carry_bearer_and_api_key(token_ok, cc_client):
    token_ok.add(responses.GET, f"{API_BASE}/contacts", json={"contacts": []})
    cc_client.list_members()
    call = api_calls(token_ok)[0]
    assert call.request.headers["Authorization"] == "Bearer access-1"
    assert call.request.headers["x-api-key"] == API_KEY
    assert call.request.headers["Content-Type"] == "application/json"


def test_list_members_maps_contacts(token_ok, cc_client):
    token_ok.add(
        responses.GET,
        f"{API_BASE}/contacts",
        json={
            "contacts": [
                {
                    "contact_id": "c1",
                    "email_address": {"address": "a@x.com", "permission_to_send": "implicit"},
                    "first_name": "A",
                },
                {"contact_id": "c2", "email_address": {"address": "b@x.com"}, "status": "active"},
            ]
        },
    )
    members = cc_client.list_members()
    assert [m.contact_id for m in members] == ["c1", "c2"]
    assert members[0].email_address == "a@x.com"
    assert members[0].status == "implicit"
    assert members[1].status == "active"
    assert "list_id=list-1" in api_calls(token_ok)[0].request.url


def test_list_members_tolerates_missing_contacts_key(token_ok, cc_client):
    token_ok.add(responses.GET, f"{API_BASE}/contacts", json={})
    assert cc_client.list_members() == []


def test_upsert_always_sets_configured_list(token_ok, cc_client):
    token_ok.add(
        responses.POST,
        f"{API_BASE}/contacts",
        json={"contact_id": "new-1", "email_address": {"address": "a@x.com"}},
        status=201,
    )
    result = cc_client.upsert_contact({"email_address": "a@x.com", "list_memberships": ["other-list"], "first_name": None})
    body = json.loads(api_calls(token_ok)[0].request.body)
    assert body["list_memberships"] == [LIST_ID]
    assert body["email_address"] == {"address": "a@x.com", "permission_to_send": "implicit"}
    assert "first_name" not in body
    assert result == {"contact_id": "new-1", "email_address": "a@x.com", "status": "subscribed"}


def test_update_always_sets_configured_list(token_ok, cc_client):
    token_ok.add(responses.PUT, f"{API_BASE}/contacts/123", json={"email_address": {"address": "a@x.com"}})
    result = cc_client.update_contact("123", {"email_address": "A@X.com", "list_memberships": []})
    body = json.loads(api_calls(token_ok)[0].request.body)
    assert body["list_memberships"] == [LIST_ID]
    assert result["contact_id"] == "123"
    assert result["status"] == "updated"


def test_update_without_email_leaves_it_out(token_ok, cc_client):
    token_ok.add(responses.PUT, f"{API_BASE}/contacts/123", json={})
    cc_client.update_contact("123", {"first_name": "Z"})
    body = json.loads(api_calls(token_ok)[0].request.body)
    assert "email_address" not in body
    assert body == {"first_name": "Z", "list_memberships": [LIST_ID]}


def test_remove_contact_from_list_only_detaches(token_ok, cc_client):
    token_ok.add(responses.DELETE, f"{API_BASE}/contact_lists/{LIST_ID}/contacts/c9", status=204)
    assert cc_client.remove_contact_from_list("c9") is None
    assert api_calls(token_ok)[0].request.method == "DELETE"


def test_error_with_json_body(token_ok, cc_client):
    token_ok.add(responses.POST, f"{API_BASE}/contacts", status=409, json=[{"error_key": "conflict"}])
    with pytest.raises(ExternalAPIError) as ei:
        cc_client.upsert_contact({"email_address": "a@x.com"})
    assert ei.value.status == 409
    assert ei.value.payload == [{"error_key": "conflict"}]
    assert "409" in str(ei.value)


def test_error_with_text_body(token_ok, cc_client):
    token_ok.add(responses.GET, f"{API_BASE}/contacts", status=502, body="<html>Bad Gateway</html>")
    with pytest.raises(ExternalAPIError) as ei:
        cc_client.list_members()
    assert ei.value.payload is None
    assert ei.value.body == "<html>Bad Gateway</html>"


def test_list_contact_lists(token_ok, cc_client):
    token_ok.add(
        responses.GET,
        f"{API_BASE}/contact_lists",
        json={"lists": [{"list_id": "l1", "name": "Members", "contact_count": 3}]},
    )
    assert cc_client.list_contact_lists()[0]["list_id"] == "l1"


def test_client_from_config_shares_token_cache(token_ok, cc_config):
    token_ok.add(responses.GET, f"{API_BASE}/contacts", json={"contacts": []})
    client_from_config(cc_config).list_members()
    client_from_config(cc_config).list_members()
    assert len(token_calls(token_ok)) == 1
