#!/usr/bin/env python3
"""
Execution Authority CLI

Evaluate proposals locally, run the interception demo, and produce or
verify proof artifacts from the decision log.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

import httpx

from .config import load_config
from .core.capability import can_execute
from .core.errors import AuthorityError
from .core.proposal import Proposal
from .dispatcher import VerdictDispatcher
from .executor import echo_executor
from .main import configure_logging
from .service.audit import DecisionLog, ProofManifestGenerator
from .service.policy import VerdictEngine

SERVER_URL = "http://127.0.0.1:8766"

VERDICT_ICONS = {"STOP": "❌", "HOLD": "🔶", "ALLOW": "✅"}

# Interception scenarios: destructive, remote shell, approval-gated, benign
DEMO_SCENARIOS = [
    ("delete_server_files", {"path": "/var/lib/production", "recursive": True}),
    ("reverse_shell", {"host": "192.168.1.100", "port": 4444}),
    ("deploy_production", {"service": "api-gateway", "version": "v2.3.0"}),
    ("read_config", {"file": "/app/config.json"}),
]


def build_runtime(args):
    """Load config and wire log, engine and dispatcher."""
    config = load_config(args.config)
    if getattr(args, "log_path", None):
        config.log_path = Path(args.log_path).expanduser()
    configure_logging("DEBUG" if args.verbose else config.log_level)

    decision_log = DecisionLog(config.log_path)
    dispatcher = VerdictDispatcher(VerdictEngine(config), decision_log, echo_executor)
    return config, decision_log, dispatcher


def print_capability(capability):
    decision = capability.decision
    icon = VERDICT_ICONS.get(decision.verdict.value, "❓")
    print(f"{icon} {decision.verdict.value}: {capability.reason}")
    print(f"   Risk: {decision.risk_score}")
    print(f"   Rule: {decision.rule.value}")
    print(f"   Fingerprint: {decision.fingerprint[:16]}...")
    print(f"   Proof: {capability.proof_path}")


async def run_proposal(dispatcher: VerdictDispatcher, proposal: Proposal, execute: bool):
    capability = dispatcher.dispatch(proposal)
    print_capability(capability)

    if execute and can_execute(capability):
        result = await capability.execute()
        status = "success" if result.success else "error"
        print(f"   Execution: {status}")
        if result.error:
            print(f"   Error: {result.error}")
        elif result.result is not None:
            print(f"   Result: {json.dumps(result.result, default=str)}")
    return capability


def cmd_evaluate(args):
    """Decide on a single proposal."""
    try:
        arguments = json.loads(args.args)
    except json.JSONDecodeError as e:
        print(f"❌ --args is not valid JSON: {e}")
        sys.exit(2)

    config, decision_log, dispatcher = build_runtime(args)
    with decision_log:
        try:
            proposal = Proposal.create(
                args.action,
                arguments,
                source=config.source,
                session_id=args.session_id,
            )
            asyncio.run(run_proposal(dispatcher, proposal, args.execute))
        except AuthorityError as e:
            print(f"❌ {e}")
            sys.exit(1)


def cmd_demo(args):
    """Run the four interception scenarios."""
    config, decision_log, dispatcher = build_runtime(args)

    print("🛡️  Execution Authority Demo")
    print("=" * 50)

    async def run_all():
        for action, arguments in DEMO_SCENARIOS:
            print(f"\n▶ {action} {json.dumps(arguments)}")
            proposal = Proposal.create(action, arguments, source="demo")
            await run_proposal(dispatcher, proposal, execute=True)

    with decision_log:
        try:
            asyncio.run(run_all())
        except AuthorityError as e:
            print(f"❌ {e}")
            sys.exit(1)

        print()
        stats = dispatcher.get_stats()
        print(
            f"Decisions: STOP={stats['STOP']} HOLD={stats['HOLD']} "
            f"ALLOW={stats['ALLOW']}"
        )
        print(f"Log: {decision_log.log_file}")


def cmd_manifest(args):
    """Generate and save the proof manifest."""
    config, decision_log, _ = build_runtime(args)
    proof_dir = Path(args.out).expanduser() if args.out else config.proof_dir

    with decision_log:
        generator = ProofManifestGenerator(decision_log, proof_dir=proof_dir)
        manifest = generator.generate(
            session_id=args.session_id,
            latest_session_only=args.latest_session,
        )
        paths = asyncio.run(generator.save(manifest))

    print(f"📜 Proof Manifest ({manifest.session_id})")
    print("=" * 50)
    print(f"Total: {manifest.total_decisions}")
    print(f"STOP: {manifest.stop_count}")
    print(f"HOLD: {manifest.hold_count}")
    print(f"ALLOW: {manifest.allow_count}")
    print(
        f"Executions: {manifest.execution_success_count} success, "
        f"{manifest.execution_error_count} error"
    )
    print(f"Chain valid: {manifest.chain_valid}")
    print(f"SHA256: {manifest.manifest_sha256}")
    print(f"Written: {paths['manifest']}")
    print(f"         {paths['summary']}")


def cmd_verify(args):
    """Verify the decision log hash chain."""
    _, decision_log, _ = build_runtime(args)

    with decision_log:
        result = decision_log.verify_chain()

    if result.valid:
        print(f"✅ {result.message}")
        return

    print(f"❌ {result.message}")
    if result.broken_links:
        print(f"   Broken links at entries: {result.broken_links}")
    if result.malformed_lines:
        print(f"   Malformed lines: {result.malformed_lines}")
    sys.exit(1)


def cmd_status(args):
    """Show status of a running server."""
    try:
        client = httpx.Client(base_url=args.url, timeout=10)
        health = client.get("/health").json()
        stats = client.get("/v1/stats").json()
        chain = client.get("/v1/proof/verify").json()
    except httpx.ConnectError:
        print(f"❌ Server not reachable at {args.url}")
        print("Start with: python -m execution_authority.main")
        sys.exit(1)

    print("🛡️  Execution Authority Status")
    print("=" * 40)
    print(f"Status: {health['status']}")
    print(f"Version: {health['version']}")
    print(f"Policy: {stats['policy_id']}")
    print()
    print(
        f"Decisions: STOP={stats['STOP']} HOLD={stats['HOLD']} "
        f"ALLOW={stats['ALLOW']}"
    )
    print(f"Rejected: {stats['rejected']}  Aborted: {stats['aborted']}")
    print()
    icon = "✅" if chain["valid"] else "❌"
    print(f"Audit chain: {icon} {chain['total_entries']} entries")


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog="ear", description="Execution Authority Runtime CLI"
    )
    parser.add_argument("--config", help="YAML or JSON gate config file")
    parser.add_argument("--log-path", help="Override the decision log location")
    parser.add_argument("-v", "--verbose", action="store_true")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # evaluate
    evaluate_parser = subparsers.add_parser("evaluate", help="Decide on one proposal")
    evaluate_parser.add_argument("--action", required=True, help="Action name")
    evaluate_parser.add_argument(
        "--args", default="{}", help="Arguments as a JSON object"
    )
    evaluate_parser.add_argument("--session-id", help="Session identifier")
    evaluate_parser.add_argument(
        "--execute", action="store_true", help="Invoke the executor if ALLOW"
    )
    evaluate_parser.set_defaults(func=cmd_evaluate)

    # demo
    demo_parser = subparsers.add_parser("demo", help="Run interception scenarios")
    demo_parser.set_defaults(func=cmd_demo)

    # manifest
    manifest_parser = subparsers.add_parser("manifest", help="Write proof manifest")
    manifest_parser.add_argument("--out", help="Output directory")
    manifest_parser.add_argument("--session-id", help="Only this session id")
    manifest_parser.add_argument(
        "--latest-session", action="store_true", help="Only the most recent session"
    )
    manifest_parser.set_defaults(func=cmd_manifest)

    # verify
    verify_parser = subparsers.add_parser("verify", help="Verify the log hash chain")
    verify_parser.set_defaults(func=cmd_verify)

    # status
    status_parser = subparsers.add_parser("status", help="Query a running server")
    status_parser.add_argument("--url", default=SERVER_URL, help="Server base URL")
    status_parser.set_defaults(func=cmd_status)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    args.func(args)


if __name__ == "__main__":
    main()
