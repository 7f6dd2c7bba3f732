#!/usr/bin/env python3
"""ControlGate sandbox demo — one passing and one blocked request.

Runs the full draft → preview → policy → execution flow against the
testnet wallet, then prints the activity log.

Usage:
    python demo_sandbox.py              # in-memory storage
    python demo_sandbox.py --cancel     # the wallet declines to sign
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from controlgate import ControlGate, GateConfig, SandboxWalletProvider
from controlgate.config import ExecutionConfig, PolicyConfig
from controlgate.workflow import ExecutionPhase

REQUESTS = [
    {
        "contract_address": "0x" + "ab" * 20,
        "method": "transfer",
        "parameters": '{"to": "0x' + "cd" * 20 + '", "amount": 5}',
        "reason": "Monthly contributor payout",
    },
    {
        "contract_address": "0x1234",
        "method": "drain-all",
        "parameters": "{to: everyone}",
        "reason": "because",
    },
]


async def run(cancel: bool) -> None:
    config = GateConfig(policy=PolicyConfig(tick_interval=0.2), execution=ExecutionConfig(submit_delay=0.5))
    provider = SandboxWalletProvider(username="demo-user", cancel=cancel)

    async with ControlGate(config, wallet_provider=provider) as gate:
        connection = await gate.wallet.connect()
        print(f"Wallet connected as {connection.username}\n")

        workflow = gate.workflow
        for fields in REQUESTS:
            print("=" * 60)
            print(f"  {fields['method']} on {fields['contract_address']}")
            print("=" * 60)

            workflow.update_draft(**fields)
            workflow.submit()
            workflow.proceed()
            result = await workflow.run_policy(lambda pct: print(f"  checking... {pct}%"))
            for check in result.checks:
                print(f"  [{'PASS' if check.passed else 'FAIL'}] {check.name}: {check.message}")

            if not result.passed:
                print("  -> blocked, revising\n")
                workflow.revise()
                workflow.update_draft(contract_address="", method="", parameters="", reason="")
                continue

            request = workflow.approve()
            log = await workflow.execute()
            if workflow.phase == ExecutionPhase.COMPLETE:
                print(f"  -> executed {request.reference_id} ({log.execution_hash[:16]}...)\n")
            else:
                print(f"  -> failed: {log.error}\n")
            workflow.reset()

        print("Activity log:")
        for entry in gate.store.logs:
            print(f"  {entry.timestamp:%H:%M:%S}  {entry.reference_id}  {entry.method}  {entry.status}")


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--cancel", action="store_true", help="Decline every signature request")
    parser.add_argument("--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO if args.verbose else logging.WARNING)
    asyncio.run(run(args.cancel))


if __name__ == "__main__":
    main()
