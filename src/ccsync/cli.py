"""CLI for ccsync: push club members into a Constant Contact list.

Commands: serve (HTTP API), sync (from a JSON export), list-members, list-lists,
test-connection, verify, token, auth-url, exchange-code.

Exit codes: 0 success, 1 error, 2 usage.
"""
from __future__ import annotations

import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, List

from .cc_contacts import ConstantContactClient, client_from_config
from .config import CCConfig, verbose_enabled
from .errors import ConfigurationError
from .reconcile import INVALID, UPDATE, plan_removals, plan_sync, sync_members


# ----------------------------
# Commands
# ----------------------------

def _client() -> ConstantContactClient:
    return client_from_config(CCConfig.from_env().require())


def _api_key(config: CCConfig) -> str:
    if not config.api_key:
        raise ConfigurationError("Missing env var: CONSTANT_CONTACT_API_KEY")
    return config.api_key


def _load_members(path: str) -> List[Any]:
    """Members JSON: either an array of member objects or {"members": [...]}."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if isinstance(data, dict):
        data = data.get("members")
    if not isinstance(data, list):
        raise ValueError(f"{path}: expected a JSON array of members (or an object with a 'members' array)")
    return data


def _sanitize_tsv(s: str) -> str:
    """Replace tab/newline with space so piped output stays column-aligned (e.g. column -t, awk)."""
    return (s or "").replace("\t", " ").replace("\n", " ").replace("\r", " ").strip()


def cmd_token() -> None:
    c = _client()
    # debug aid: prints a live bearer token
    print(c.oauth.get_access_token())


def cmd_list_lists() -> None:
    c = _client()
    print("List_ID\tName\tContacts")
    for lst in c.list_contact_lists():
        name = _sanitize_tsv(str(lst.get("name") or ""))
        print(f"{lst.get('list_id')}\t{name}\t{lst.get('contact_count') or 0}")


def cmd_list_members() -> None:
    c = _client()
    members = c.list_members()
    for m in members:
        name = _sanitize_tsv(" ".join(x for x in (m.first_name, m.last_name) if x))
        print(f"{m.contact_id}\t{m.email_address}\t{name}\t{m.status}")
    print(f"{len(members)} contact(s) on list {c.list_id}", file=sys.stderr)


def cmd_test_connection() -> None:
    c = _client()
    count = len(c.list_members())
    print(f"Connection successful ({count} contact(s) on list {c.list_id})")


def cmd_sync(members_path: str, *, dry_run: bool, remove_missing: bool = False) -> None:
    members = _load_members(members_path)
    c = _client()

    if dry_run:
        existing = c.list_members()
        creates = updates = invalid = 0
        for planned in plan_sync(members, existing):
            if planned.action == INVALID:
                invalid += 1
                print(f"[DRY] INVALID {planned.email}  ({planned.error})")
            elif planned.action == UPDATE:
                updates += 1
                print(f"[DRY] UPDATE  {planned.email} -> {planned.contact_id}")
            else:
                creates += 1
                print(f"[DRY] CREATE  {planned.email}")

        removals = plan_removals(members, existing)
        for contact in removals:
            print(f"[DRY] would remove from list (no longer a member)  {contact.email_address}  {contact.contact_id}")
        print(
            f"[DRY] summary: creates={creates} updates={updates} invalid={invalid} "
            f"removals={len(removals)} total={len(members)}"
        )
        if removals and not remove_missing:
            print("[DRY] (pass --remove-missing to detach those contacts from the list)")
        return

    result = sync_members(members, c, remove_missing=remove_missing)
    for err in result.errors:
        print(err, file=sys.stderr)
    print(f"added={result.added} updated={result.updated} removed={result.removed} errors={len(result.errors)}")
    if result.errors:
        sys.exit(1)


def cmd_verify() -> None:
    """Check config and test the token exchange + list access. Exit 0 if OK."""
    config = CCConfig.from_env()
    missing = config.missing()
    if missing:
        for name in missing:
            print(f"ccsync verify: Missing env: {name}", file=sys.stderr)
        sys.exit(1)
    if not config.client_secret:
        print("ccsync verify: CONSTANT_CONTACT_CLIENT_SECRET not set; using PKCE refresh (client_id in body).", file=sys.stderr)

    try:
        c = client_from_config(config)
        c.oauth.get_access_token()
    except Exception as e:
        print(f"ccsync verify: token: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        c.list_members()
    except Exception as e:
        print(f"ccsync verify: list {config.list_id}: {e}", file=sys.stderr)
        sys.exit(1)

    print("Config OK. Token exchange and list access verified.")


def cmd_auth_url(redirect_uri: str, *, pkce: bool = True) -> None:
    from .cc_oauth_exchange import build_authorization_url, generate_pkce_pair, generate_state

    state = generate_state()
    verifier = challenge = None
    if pkce:
        verifier, challenge = generate_pkce_pair()
    url = build_authorization_url(
        api_key=_api_key(CCConfig.from_env()),
        redirect_uri=redirect_uri,
        state=state,
        code_challenge=challenge,
    )
    print("Visit this URL in a browser and authorize the application:")
    print()
    print(url)
    print()
    print(f"state: {state}")
    if verifier:
        print(f"code verifier (pass to exchange-code --code-verifier): {verifier}")


def cmd_exchange_code(code: str, redirect_uri: str, code_verifier: str | None) -> None:
    from .cc_oauth_exchange import exchange_code_for_tokens, parse_redirect_url

    # accept the full redirect URL as well as the bare code
    if code.startswith("http://") or code.startswith("https://"):
        code = parse_redirect_url(code)

    config = CCConfig.from_env()
    data = exchange_code_for_tokens(
        code=code,
        api_key=_api_key(config),
        redirect_uri=redirect_uri,
        code_verifier=code_verifier,
        client_secret=config.client_secret,
        token_url=config.token_url,
    )

    refresh = data.get("refresh_token")
    if refresh:
        print("Add this line to .env:")
        print("")
        print("CONSTANT_CONTACT_REFRESH_TOKEN=" + refresh)
    else:
        print("No refresh_token returned (did you request the offline_access scope?)", file=sys.stderr)


def cmd_serve(host: str, port: int) -> None:
    import uvicorn

    uvicorn.run("ccsync.app:app", host=host, port=port, log_level="debug" if verbose_enabled() else "info")


def main() -> None:
    import argparse

    p = argparse.ArgumentParser(
        prog="ccsync",
        description="Sync club member records into a Constant Contact contact list.",
        epilog=(
            "serve: HTTP API for the admin UI (token proxy, list-members, sync-members).\n"
            "sync:  one-off sync from a JSON export of member rows.\n"
            "\n"
            "Contacts are matched by email (trimmed, case-insensitive). Existing contacts are\n"
            "updated, new ones created; every write puts the contact on CONSTANT_CONTACT_LIST_ID.\n"
            "Contacts on the list that are no longer members are kept unless --remove-missing.\n"
            "\n"
            "First-time setup:\n"
            "  ccsync auth-url --redirect-uri https://example.org/callback\n"
            "  ccsync exchange-code --code '<redirect url>' --redirect-uri https://example.org/callback \\\n"
            "      --code-verifier <verifier>\n"
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    p.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging (same as CCSYNC_VERBOSE=1).",
    )

    sub = p.add_subparsers(dest="cmd", required=True, metavar="COMMAND")

    p_serve = sub.add_parser("serve", help="Run the HTTP API (uvicorn).")
    p_serve.add_argument("--host", default=os.environ.get("CCSYNC_HOST", "127.0.0.1"))
    p_serve.add_argument("--port", type=int, default=int(os.environ.get("CCSYNC_PORT", "3001")))

    p_sync = sub.add_parser("sync", help="Sync members from a JSON file into the list.")
    p_sync.add_argument("members", help="JSON file: array of member objects, or {\"members\": [...]}.")
    p_sync.add_argument(
        "--dry-run",
        action="store_true",
        help="Do not write to Constant Contact; show CREATE/UPDATE/INVALID per member.",
    )
    p_sync.add_argument(
        "--remove-missing",
        action="store_true",
        help="Detach list contacts whose email matches no member in the file. Default: off.",
    )

    sub.add_parser("list-members", help="List contacts on the configured list.")
    sub.add_parser("list-lists", help="List contact lists in the account (id, name, count).")
    sub.add_parser("test-connection", help="Refresh a token and fetch the list once.")
    sub.add_parser("verify", help="Check config and test token exchange + list access.")
    sub.add_parser("token", help="Print an access token (debug).")

    p_auth = sub.add_parser("auth-url", help="Print the authorization URL (PKCE by default).")
    p_auth.add_argument("--redirect-uri", required=True, help="Must match the redirect URI configured for the app.")
    p_auth.add_argument("--no-pkce", action="store_true", help="Classic flow (requires CONSTANT_CONTACT_CLIENT_SECRET at exchange).")

    p_ex = sub.add_parser(
        "exchange-code",
        help="Exchange an authorization code for tokens (prints CONSTANT_CONTACT_REFRESH_TOKEN=...).",
    )
    p_ex.add_argument("--code", required=True, help="Authorization code, or the full redirect URL.")
    p_ex.add_argument("--redirect-uri", required=True, help="Same redirect URI used for auth-url.")
    p_ex.add_argument("--code-verifier", default=None, help="PKCE code verifier printed by auth-url.")

    args = p.parse_args()

    if args.verbose:
        os.environ["CCSYNC_VERBOSE"] = "1"
    logging.basicConfig(
        level=logging.DEBUG if verbose_enabled() else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        if args.cmd == "serve":
            cmd_serve(args.host, args.port)
        elif args.cmd == "sync":
            cmd_sync(args.members, dry_run=args.dry_run, remove_missing=args.remove_missing)
        elif args.cmd == "list-members":
            cmd_list_members()
        elif args.cmd == "list-lists":
            cmd_list_lists()
        elif args.cmd == "test-connection":
            cmd_test_connection()
        elif args.cmd == "verify":
            cmd_verify()
        elif args.cmd == "token":
            cmd_token()
        elif args.cmd == "auth-url":
            cmd_auth_url(args.redirect_uri, pkce=not args.no_pkce)
        elif args.cmd == "exchange-code":
            cmd_exchange_code(args.code, args.redirect_uri, args.code_verifier)
        else:
            raise SystemExit(2)
        sys.exit(0)
    except SystemExit:
        raise
    except KeyboardInterrupt:
        sys.exit(130)
    except Exception as e:
        print(f"ccsync: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
