"""Tests for the ControlGate application root."""

from __future__ import annotations

import pytest

from controlgate import ControlGate, ControlGateConfigError, FileBackend, MemoryBackend
from controlgate.config import load_config_string
from controlgate.logs import LogStatus
from controlgate.status import Availability, Connectivity

FAST = """\
policy:
  ticks: 0
execution:
  submit_delay: 0
"""


class _RecordingClient:
    def __init__(self):
        self.logs = []
        self.payments = []
        self.closed = False

    async def post_log(self, log):
        self.logs.append(log)
        return True

    async def approve_payment(self, payment_id):
        self.payments.append(("approve", payment_id))
        return True

    async def complete_payment(self, payment_id, txid):
        self.payments.append(("complete", payment_id, txid))
        return True

    async def health(self):
        return True

    async def close(self):
        self.closed = True


async def _run(gate, fields):
    workflow = gate.workflow
    workflow.update_draft(**fields)
    workflow.submit()
    workflow.proceed()
    await workflow.run_policy()
    workflow.approve()
    return await workflow.execute()


class TestConstruction:
    def test_defaults_to_memory_backend(self):
        gate = ControlGate()
        assert isinstance(gate.backend, MemoryBackend)
        assert gate.backend.quota_bytes == 5 * 1024 * 1024
        assert gate.client is None

    def test_file_backend_from_config(self, tmp_path):
        config = load_config_string(f"storage:\n  path: {tmp_path / 'state.json'}\n")
        gate = ControlGate(config)
        assert isinstance(gate.backend, FileBackend)

    def test_backend_url_creates_client(self):
        gate = ControlGate(load_config_string("backend_url: http://localhost:3000\n"))
        assert gate.client is not None
        assert gate.client.base_url == "http://localhost:3000"

    def test_non_sandbox_requires_provider(self):
        with pytest.raises(ControlGateConfigError):
            ControlGate(load_config_string("wallet:\n  sandbox: false\n"))

    def test_from_yaml(self, tmp_path):
        path = tmp_path / "controlgate.yaml"
        path.write_text("namespace: demo\n")
        gate = ControlGate.from_yaml(path)
        assert gate.store.logs_key == "demo_execution_logs"

    def test_instances_share_nothing(self):
        first, second = ControlGate(), ControlGate()
        assert first.backend is not second.backend
        assert first.store is not second.store


class TestLifecycle:
    async def test_full_flow_with_sandbox_wallet(self, valid_fields):
        async with ControlGate.from_yaml_string(FAST) as gate:
            await gate.wallet.connect()
            log = await _run(gate, valid_fields)

        assert log.status == LogStatus.SUCCESS
        assert gate.store.logs == (log,)

    async def test_state_survives_restart(self, tmp_path, valid_fields):
        config = load_config_string(FAST + f"storage:\n  path: {tmp_path / 'state.json'}\n")

        async with ControlGate(config) as gate:
            await gate.wallet.connect()
            log = await _run(gate, valid_fields)

        async with ControlGate(config) as gate:
            assert gate.wallet.is_connected
            assert gate.store.logs == (log,)

    async def test_client_mirrors_logs_and_payments(self, valid_fields):
        client = _RecordingClient()
        async with ControlGate.from_yaml_string(FAST, client=client) as gate:
            await gate.wallet.connect()
            log = await _run(gate, valid_fields)

        assert client.logs == [log]
        assert [p[0] for p in client.payments] == ["approve", "complete"]
        assert client.payments[1][2] == log.execution_hash
        assert client.closed

    async def test_status(self):
        async with ControlGate(client=_RecordingClient()) as gate:
            status = await gate.status()
        assert status.storage == Availability.AVAILABLE
        assert status.wallet == Availability.AVAILABLE
        assert status.backend == Connectivity.ONLINE
