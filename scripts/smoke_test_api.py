#!/usr/bin/env python3
"""
Manual smoke test against a running SkillSwap server.

Checks the health endpoint, logs in, and fetches the dashboard for the
account's role.

    python scripts/smoke_test_api.py --email simple@example.com --password secret123
"""

import argparse
import json
import sys

from skillswap.client.api import ApiClient
from skillswap.client.errors import SkillSwapClientError
from skillswap.client.session import Session
from skillswap.core.config import settings


def main():
    parser = argparse.ArgumentParser(description="Smoke-test a running SkillSwap API")
    parser.add_argument("--base-url", default=settings.API_URL)
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", required=True)
    args = parser.parse_args()

    session = Session()
    failures = 0
    with ApiClient(session, base_url=args.base_url) as api:
        print(f"Testing {args.base_url} ...")
        try:
            print(f"✅ Health: {api.get('/')}")
        except SkillSwapClientError as e:
            print(f"❌ Health check failed: {e}")
            sys.exit(1)

        try:
            user = api.login(args.email, args.password)
            print(f"✅ Logged in as {user['name']} ({user['role']})")
        except SkillSwapClientError as e:
            print(f"❌ Login failed: {e}")
            sys.exit(1)

        for path in (f"/api/dashboard/{session.role}", "/api/notifications/unread-count", "/api/messages/unread-count"):
            try:
                body = api.get(path)
                print(f"✅ GET {path}")
                print(json.dumps(body, indent=2)[:2000])
            except SkillSwapClientError as e:
                failures += 1
                print(f"❌ GET {path}: {e}")

    sys.exit(1 if failures else 0)


if __name__ == "__main__":
    main()
