#!/usr/bin/env python3
"""
Request an audit report and print it as it streams.

Usage:
    python scripts/fetch_audit_report.py --from 2025-01-01 --to 2025-01-31 --token $TOKEN
    python scripts/fetch_audit_report.py --from 2025-01-01 --to 2025-01-31 --scope

Progress frames go to stderr and report text to stdout as it arrives. A
failed report ends with the server error marker.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys

# Add src/backend to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src", "backend"))

import httpx  # noqa: E402

from core.audit import ReportStreamParser  # noqa: E402
from core.audit.framing import ReportText  # noqa: E402
from models.audit_models import ProgressFrame  # noqa: E402


def describe_progress(frame: ProgressFrame) -> str:
    if frame.phase == "map":
        return f"Analyzing batch {frame.current}/{frame.total}..."
    if frame.phase == "reduce":
        return "Writing final report..."
    return "Analyzing conversations..."


async def fetch_scope(client: httpx.AsyncClient, params: dict[str, str]) -> None:
    response = await client.get("/api/v1/audit/ai-report/scope", params=params)
    response.raise_for_status()
    scope = response.json()
    print(f"{scope['thread_count']} threads, {scope['message_count']} messages, {scope['user_count']} users")


async def fetch_report(client: httpx.AsyncClient, body: dict[str, str]) -> int:
    parser = ReportStreamParser()

    async with client.stream("POST", "/api/v1/audit/ai-report", json=body) as response:
        if response.status_code != 200:
            await response.aread()
            print(f"Error {response.status_code}: {response.text}", file=sys.stderr)
            return 1

        async for data in response.aiter_bytes():
            for event in parser.feed(data):
                if isinstance(event, ProgressFrame):
                    print(describe_progress(event), file=sys.stderr)
                elif isinstance(event, ReportText):
                    sys.stdout.write(event.text)
                    sys.stdout.flush()

    result = parser.finish()
    print()
    if not result.started and result.error is None:
        print("Stream ended before the report started", file=sys.stderr)
        return 1
    if result.error:
        print(f"Report failed: {result.error}", file=sys.stderr)
        return 1
    return 0


async def main(args: argparse.Namespace) -> int:
    headers = {"Authorization": f"Bearer {args.token}"} if args.token else {}
    params = {"from": args.date_from, "to": args.date_to}
    if args.user_id:
        params["user_id"] = args.user_id

    timeout = httpx.Timeout(10.0, read=args.read_timeout)
    async with httpx.AsyncClient(base_url=args.base_url, headers=headers, timeout=timeout) as client:
        if args.scope:
            await fetch_scope(client, params)
            return 0
        return await fetch_report(client, params)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Fetch an AI audit report")
    parser.add_argument("--from", dest="date_from", required=True, help="First day (YYYY-MM-DD)")
    parser.add_argument("--to", dest="date_to", required=True, help="Last day (YYYY-MM-DD)")
    parser.add_argument("--user-id", help="Restrict to one user's threads")
    parser.add_argument("--token", default=os.getenv("CHAT_AUDIT_TOKEN"), help="Owner access token")
    parser.add_argument("--base-url", default=os.getenv("CHAT_AUDIT_URL", "http://localhost:8000"))
    parser.add_argument("--read-timeout", type=float, default=130.0, help="Seconds between stream reads")
    parser.add_argument("--scope", action="store_true", help="Only print the report scope")

    sys.exit(asyncio.run(main(parser.parse_args())))
