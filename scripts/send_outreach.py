#!/usr/bin/env python3
"""
Dev helper: send outreach emails through a running AskEdith backend.

Acts like the browser does: keeps the Nylas grant id in a local JSON file
(the CLI's localStorage), reconciles it with the backend session, then
POST-s a batch to /api/email/send-batch.

Usage
-----
# Send a sample email to one provider address
python scripts/send_outreach.py --to care@example.org

# Several recipients, custom subject and body file
python scripts/send_outreach.py --to a@example.org --to b@example.org \\
    --subject "Care inquiry" --body-file letter.txt

# Seed the local grant store (e.g. after linking a mailbox in the browser)
python scripts/send_outreach.py --grant-id <grant> --to care@example.org

# Print the batch without sending
python scripts/send_outreach.py --to care@example.org --dry-run

Environment / .env
------------------
ASKEDITH_URL      Backend base URL (default: http://localhost:8000).
"""

import argparse
import asyncio
import json
import os
import sys
import textwrap
from pathlib import Path

import httpx
from dotenv import load_dotenv

from app.services.session_bridge import FileGrantStore, HttpGrantServer, SessionBridge

DEFAULT_GRANT_STORE = Path.home() / ".askedith" / "storage.json"

_SAMPLE_BODY = textwrap.dedent("""\
    Hello,

    I am looking for in-home care for an elderly parent and would like to
    learn more about your services, availability and rates.

    Thank you,
""")


def _print_response(response: httpx.Response) -> None:
    status = response.status_code
    symbol = "OK" if status == 200 else "FAIL"
    print(f"\n[{symbol}] HTTP {status}")
    try:
        print(json.dumps(response.json(), indent=2))
    except ValueError:
        print(response.text)


async def _run(args: argparse.Namespace, emails: list[dict]) -> int:
    store = FileGrantStore(Path(args.grant_store))
    if args.grant_id:
        store.set_grant_id(args.grant_id)

    async with httpx.AsyncClient(base_url=args.url.rstrip("/")) as client:
        bridge = SessionBridge(store, HttpGrantServer(client))
        try:
            grant = await bridge.ensure_session()
        except httpx.HTTPError as e:
            print(f"WARNING: session reconciliation failed: {e}", file=sys.stderr)
        else:
            state = "established" if grant.established_in_server else "not established"
            print(f"Grant     : {grant.grant_id or '(none)'} ({state})")

        headers = {}
        grant_id = store.get_grant_id()
        if grant_id:
            headers["X-Nylas-Grant-Id"] = grant_id

        try:
            response = await client.post(
                "/api/email/send-batch", json={"emails": emails}, headers=headers
            )
        except httpx.HTTPError as e:
            print(f"ERROR: request failed: {e}", file=sys.stderr)
            return 1

    _print_response(response)
    return 0 if response.status_code == 200 else 1


def main() -> int:
    load_dotenv()

    parser = argparse.ArgumentParser(
        prog="send_outreach.py",
        description="Send outreach emails through the AskEdith backend.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--url",
        default=os.getenv("ASKEDITH_URL", "http://localhost:8000"),
        help="Backend base URL (default: http://localhost:8000)",
    )
    parser.add_argument(
        "--to",
        action="append",
        required=True,
        metavar="ADDRESS",
        help="Recipient address; repeat for several recipients.",
    )
    parser.add_argument("--subject", default="Inquiry about care services")
    parser.add_argument(
        "--body-file",
        default=None,
        metavar="PATH",
        help="File with the email body. A sample inquiry is used if omitted.",
    )
    parser.add_argument("--reply-to", default=None, metavar="ADDRESS")
    parser.add_argument(
        "--grant-id",
        default=None,
        help="Store this Nylas grant id locally before reconciling.",
    )
    parser.add_argument(
        "--grant-store",
        default=str(DEFAULT_GRANT_STORE),
        metavar="PATH",
        help=f"Local grant storage file (default: {DEFAULT_GRANT_STORE})",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the batch JSON without contacting the backend.",
    )

    args = parser.parse_args()

    if args.body_file:
        body_path = Path(args.body_file)
        if not body_path.exists():
            print(f"ERROR: File not found: {body_path}", file=sys.stderr)
            return 1
        body = body_path.read_text(encoding="utf-8")
    else:
        body = _SAMPLE_BODY

    emails = []
    for address in args.to:
        email = {"to": address, "subject": args.subject, "body": body}
        if args.reply_to:
            email["replyTo"] = args.reply_to
        emails.append(email)

    print(f"Endpoint  : {args.url.rstrip('/')}/api/email/send-batch")
    print(f"Recipients: {', '.join(args.to)}")

    if args.dry_run:
        print("\n[DRY RUN] Payload:")
        print(json.dumps({"emails": emails}, indent=2))
        return 0

    return asyncio.run(_run(args, emails))


if __name__ == "__main__":
    sys.exit(main())
