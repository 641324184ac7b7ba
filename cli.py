from __future__ import annotations

import argparse
import json
import sys

import requests


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Registrator status CLI")
    p.add_argument("--api", default="http://localhost:8089", help="Status API base URL")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("status", help="Phase, in-flight tasks and counters")

    s_ev = sub.add_parser("events", help="Show journal events")
    s_ev.add_argument("--limit", type=int, default=20)
    s_ev.add_argument("--level", default=None, help="INFO|WARN|ERROR")

    sub.add_parser("services", help="Services this node registered in Consul")

    args = p.parse_args(argv)

    base = args.api.rstrip("/")

    try:
        if args.cmd == "status":
            r = requests.get(f"{base}/status", timeout=10)
        elif args.cmd == "events":
            params = {"limit": args.limit}
            if args.level:
                params["level"] = args.level
            r = requests.get(f"{base}/events", params=params, timeout=10)
        elif args.cmd == "services":
            r = requests.get(f"{base}/services", timeout=10)
        else:
            return 2
    except requests.RequestException as e:
        print(f"Cannot reach {base}: {e}", file=sys.stderr)
        return 1

    _print(r.json())
    return 0 if r.ok else 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
