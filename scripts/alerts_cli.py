#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import os
import sys
from typing import Any
from urllib import error, request


def _http_json(
    method: str,
    url: str,
    payload: dict[str, Any] | None,
    timeout: float,
    token: str | None = None,
) -> Any:
    data = None
    headers = {"Content-Type": "application/json"}
    if token:
        headers["Authorization"] = f"Bearer {token}"
    if payload is not None:
        data = json.dumps(payload).encode("utf-8")
    req = request.Request(url=url, method=method, data=data, headers=headers)
    with request.urlopen(req, timeout=timeout) as resp:
        body = resp.read().decode("utf-8")
        return json.loads(body) if body else None


def login(api_base: str, email: str, password: str, timeout: float) -> str:
    payload = _http_json("POST", f"{api_base}/auth/login", {"email": email, "password": password}, timeout)
    return payload["token"]


def print_alerts(alerts: list[dict[str, Any]]) -> None:
    if not alerts:
        print("No alerts.")
        return
    for row in alerts:
        state = "ack" if row.get("acknowledged") else "OPEN"
        print(
            f"  {row.get('id')} | {state:4} | {row.get('severity'):8} | {row.get('alert_type'):12} | "
            f"{row.get('bin_name')} = {row.get('current_value')}{row.get('unit', '')}"
        )


def run(args: argparse.Namespace) -> int:
    try:
        token = login(args.api_base, args.email, args.password, args.timeout)
        if args.command == "login":
            print(token)
        elif args.command == "list":
            query = "" if args.all else "?acknowledged=false"
            alerts = _http_json("GET", f"{args.api_base}/api/alerts{query}", None, args.timeout, token)
            print_alerts(alerts)
        elif args.command == "check":
            report = _http_json("POST", f"{args.api_base}/api/alerts/check", None, args.timeout, token)
            print(f"created={report['created']} updated={report['updated']} failed={len(report['failed'])}")
            print_alerts(report["alerts"])
        elif args.command == "ack":
            alert = _http_json(
                "POST", f"{args.api_base}/api/alerts/{args.alert_id}/acknowledge", None, args.timeout, token
            )
            print(f"[ok] acknowledged {alert['id']} at {alert['acknowledged_at']}")
    except error.HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="ignore")
        print(f"[error] HTTP {exc.code}: {detail or exc.reason}", file=sys.stderr)
        return 1
    except error.URLError as exc:
        print(f"[error] Request error: {exc.reason}", file=sys.stderr)
        return 1
    return 0


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Command line access to bin alerts.")
    parser.add_argument("--api-base", default="http://localhost:8000", help="Backend API base URL")
    parser.add_argument("--timeout", type=float, default=5.0, help="HTTP timeout seconds")
    parser.add_argument("--email", default=os.getenv("SORTYX_EMAIL", "admin@sortyx.com"))
    parser.add_argument("--password", default=os.getenv("SORTYX_PASSWORD", "admin123"))

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("login", help="Print a bearer token")
    list_parser = sub.add_parser("list", help="List open alerts")
    list_parser.add_argument("--all", action="store_true", help="Include acknowledged alerts")
    sub.add_parser("check", help="Run an alert check now")
    ack_parser = sub.add_parser("ack", help="Acknowledge an alert")
    ack_parser.add_argument("alert_id")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    raise SystemExit(run(args))


if __name__ == "__main__":
    main()
