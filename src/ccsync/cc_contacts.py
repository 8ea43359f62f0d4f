"""Constant Contact v3 contacts API client.

Every call carries a bearer token from ConstantContactOAuth plus the x-api-key header.
Writes always re-assert list_memberships = [list_id] so contacts cannot drift off the list.
No pagination: list_members returns what a single request yields.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping

import requests

from .cc_auth import ConstantContactOAuth, shared_oauth
from .config import DEFAULT_API_BASE, DEFAULT_TIMEOUT, CCConfig
from .errors import ExternalAPIError
from .transform import ListMember, parse_list_member

logger = logging.getLogger(__name__)


class ConstantContactClient:
    def __init__(
        self,
        oauth: ConstantContactOAuth,
        list_id: str,
        *,
        api_base: str = DEFAULT_API_BASE,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.oauth = oauth
        self.list_id = list_id
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.oauth.get_access_token()}",
            "Content-Type": "application/json",
            "x-api-key": self.oauth.api_key,
        }

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self.api_base}{path}"
        r = requests.request(method, url, headers=self._headers(), timeout=self.timeout, **kwargs)
        if not r.ok:
            # Error payloads are not consistently JSON; keep the raw text either way.
            try:
                payload = r.json()
            except ValueError:
                payload = None
            raise ExternalAPIError(
                f"Constant Contact API error: {r.status_code} {r.reason} - {r.text}",
                status=r.status_code,
                body=r.text,
                payload=payload,
            )
        if not r.content:
            return None
        return r.json()

    def _with_list(self, contact_data: Mapping[str, Any]) -> Dict[str, Any]:
        body = {k: v for k, v in contact_data.items() if v is not None}
        email = body.get("email_address")
        if isinstance(email, str):
            body["email_address"] = {"address": email, "permission_to_send": "implicit"}
        body["list_memberships"] = [self.list_id]
        return body

    def list_contact_lists(self) -> List[Dict[str, Any]]:
        data = self._request("GET", "/contact_lists") or {}
        lists = data.get("lists") or []
        return lists if isinstance(lists, list) else [lists]

    def list_members(self) -> List[ListMember]:
        data = self._request("GET", "/contacts", params={"list_id": self.list_id}) or {}
        contacts = data.get("contacts") or []
        members = [parse_list_member(c) for c in contacts if isinstance(c, dict)]
        logger.info("Fetched %d contacts from list %s", len(members), self.list_id)
        return members

    def upsert_contact(self, contact_data: Mapping[str, Any]) -> Dict[str, Any]:
        """POST /contacts: the service creates or overwrites by email."""
        body = self._with_list(contact_data)
        resp = self._request("POST", "/contacts", json=body) or {}
        return {
            "contact_id": resp.get("contact_id"),
            "email_address": (resp.get("email_address") or {}).get("address", ""),
            "status": resp.get("status") or "subscribed",
        }

    def update_contact(self, contact_id: str, contact_data: Mapping[str, Any]) -> Dict[str, Any]:
        """PUT /contacts/{id}: full replace of the contact's mutable fields."""
        body = self._with_list(contact_data)
        resp = self._request("PUT", f"/contacts/{contact_id}", json=body) or {}
        return {
            "contact_id": contact_id,
            "email_address": (resp.get("email_address") or {}).get("address", ""),
            "status": "updated",
        }

    def remove_contact_from_list(self, contact_id: str) -> None:
        """Detach from the configured list only; the contact itself is kept."""
        self._request("DELETE", f"/contact_lists/{self.list_id}/contacts/{contact_id}")


def client_from_config(config: CCConfig) -> ConstantContactClient:
    """Client for a validated config; the token cache is shared per credential set."""
    return ConstantContactClient(
        shared_oauth(config),
        config.list_id,
        api_base=config.api_base,
        timeout=config.timeout,
    )
