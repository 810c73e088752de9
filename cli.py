from __future__ import annotations

import argparse
import json
import logging
import sys

import requests

from fsr import db
from fsr.descriptor import load_descriptor
from fsr.errors import ConfigurationError, TargetBusy
from fsr.retry import RetryPolicy
from fsr.runtime import RuntimeState
from fsr.service import run_reconciliation
from fsr.settings import settings
from fsr.targets import open_target

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def _print(obj) -> None:
    print(json.dumps(obj, indent=2, ensure_ascii=False))


def _apply(args: argparse.Namespace) -> int:
    try:
        desired = load_descriptor(args.descriptor, target=args.target)
        remote = open_target(
            desired.target or "",
            remote_url=args.remote_url,
            rpc_url=args.rpc_url,
            deployments_dir=args.deployments_dir,
            sender=args.sender,
        )
    except ConfigurationError as e:
        print(f"configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG

    if not args.no_history:
        db.init_db()
    policy = RetryPolicy.from_settings(max_retries=args.max_retries)
    try:
        result, run_id = run_reconciliation(
            RuntimeState(),
            desired,
            remote,
            policy=policy,
            call_timeout_s=args.timeout,
            persist=not args.no_history,
        )
    except ConfigurationError as e:
        print(f"configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG
    except TargetBusy as e:
        print(str(e), file=sys.stderr)
        return EXIT_FAILED
    finally:
        close = getattr(remote, "close", None)
        if callable(close):
            close()

    _print({"run_id": run_id, **result.to_dict()})
    return EXIT_OK if result.ok else EXIT_FAILED


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser(description="Field State Reconciler CLI")
    p.add_argument("--api", default="http://localhost:8000", help="API base URL")
    p.add_argument("--log-level", default=settings.log_level)
    sub = p.add_subparsers(dest="cmd", required=True)

    s_apply = sub.add_parser("apply", help="Reconcile a target against a descriptor file (runs locally)")
    s_apply.add_argument("descriptor", help="Path to a desired-state descriptor (JSON)")
    s_apply.add_argument("--target", help="Target identifier; overrides the descriptor's target")
    s_apply.add_argument("--remote-url", help="HTTP remote base URL (FSR_REMOTE_URL)")
    s_apply.add_argument("--rpc-url", help="JSON-RPC node URL for contract targets (FSR_RPC_URL)")
    s_apply.add_argument("--deployments-dir", help="Directory holding <target>.json deployment artifacts")
    s_apply.add_argument("--sender", help="Account used to send write transactions")
    s_apply.add_argument("--max-retries", type=int, help="Retries per write on transport failures")
    s_apply.add_argument("--timeout", type=float, help="Wall-clock seconds per remote call")
    s_apply.add_argument("--no-history", action="store_true", help="Do not record the run in the local sqlite DB")

    s_sub = sub.add_parser("submit", help="Submit a descriptor file to the API")
    s_sub.add_argument("descriptor")
    s_sub.add_argument("--target")
    s_sub.add_argument("--max-retries", type=int)

    s_runs = sub.add_parser("runs", help="List recent runs")
    s_runs.add_argument("--target")
    s_runs.add_argument("--limit", type=int, default=20)

    s_run = sub.add_parser("run", help="Show one run with its field outcomes")
    s_run.add_argument("run_id", type=int)

    s_ev = sub.add_parser("events", help="Show events")
    s_ev.add_argument("--target")
    s_ev.add_argument("--limit", type=int, default=20)

    args = p.parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s %(message)s")

    if args.cmd == "apply":
        return _apply(args)

    base = args.api.rstrip("/")

    if args.cmd == "submit":
        try:
            with open(args.descriptor, encoding="utf-8") as fh:
                descriptor = json.load(fh)
        except (OSError, json.JSONDecodeError) as e:
            print(f"configuration error: {e}", file=sys.stderr)
            return EXIT_CONFIG
        payload = {"descriptor": descriptor, "target": args.target, "max_retries": args.max_retries}
        r = requests.post(f"{base}/runs", json=payload, timeout=300)
        _print(r.json())
        if r.status_code == 422:
            return EXIT_CONFIG
        return EXIT_OK if r.status_code == 200 else EXIT_FAILED

    if args.cmd == "runs":
        params = {"limit": args.limit}
        if args.target:
            params["target"] = args.target
        _print(requests.get(f"{base}/runs", params=params, timeout=10).json())
        return EXIT_OK

    if args.cmd == "run":
        r = requests.get(f"{base}/runs/{args.run_id}", timeout=10)
        _print(r.json())
        return EXIT_OK if r.ok else EXIT_FAILED

    if args.cmd == "events":
        params = {"limit": args.limit}
        if args.target:
            params["target"] = args.target
        _print(requests.get(f"{base}/events", params=params, timeout=10).json())
        return EXIT_OK

    return EXIT_CONFIG


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
