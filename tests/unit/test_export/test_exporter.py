# SPDX-License-Identifier: LGPL-3.0-or-later
"""
Unit tests for the batch Exporter.

Disk transport is replaced by a recording double; the XenAPI graph comes
from the in-memory fake.
"""

import tempfile
import unittest
from pathlib import Path
from unittest.mock import Mock

from fakes.fake_xenapi import add_disk, add_vif, make_api, make_client, vm_record
from xen2ovf.core.exceptions import DiskTransferError, InvalidVMStateError, VMNotFoundError
from xen2ovf.export.events import EventReporter, RecordingEventSink
from xen2ovf.export.models import ExportOptions
from xen2ovf.export.orchestrator import Exporter
from xen2ovf.ovf.writer import OVF_NS


class RecordingTransport:
    instances = []

    def __init__(self, logger, client, options, token, reporter, *, worker_token=None, fail_on=None):
        self.worker_token = worker_token
        self.copied = []
        self.network = None
        self.closed = False
        self.fail_on = fail_on
        RecordingTransport.instances.append(self)

    def configure_network(self, network):
        self.network = network
        return "https://xen.example.com"

    def copy_disks(self, envelope, vdi_refs, target_path):
        try:
            for ref in vdi_refs:
                if ref.storage_id == self.fail_on:
                    raise DiskTransferError(code=13, msg=f"Failed to transfer virtual disk {ref.storage_id}")
                self.copied.append(ref.storage_id)
        finally:
            vdi_refs.clear()
        return []

    def close(self):
        self.closed = True


def _two_vm_api():
    api = make_api()
    add_disk(api, 0)
    add_vif(api, 1)
    api.add("VM", "OpaqueRef:vm2", **vm_record(uuid="vm-uuid-2", name_label="beta"))
    add_disk(api, 1, vm_ref="OpaqueRef:vm2")
    return api


class TestExporter(unittest.TestCase):
    def setUp(self):
        RecordingTransport.instances = []
        self.logger = Mock()
        self.reporter = EventReporter()
        self.sink = RecordingEventSink()
        self.reporter.subscribe(self.sink)

    def _exporter(self, api, options=None, factory=RecordingTransport):
        return Exporter(
            self.logger,
            make_client(api),
            options or ExportOptions(),
            reporter=self.reporter,
            transport_factory=factory,
            worker_token="tok123",
        )

    def test_metadata_only_writes_envelope_without_transport(self):
        with tempfile.TemporaryDirectory() as td:
            out = Path(td) / "out"
            env = self._exporter(make_api(), ExportOptions(metadata_only=True)).process(out, "pkg", ["alpha"])

            self.assertEqual(RecordingTransport.instances, [])
            self.assertEqual([vs.name for vs in env.systems], ["alpha"])
            self.assertEqual(env.files, {})
            ovf = out / "pkg.ovf"
            self.assertTrue(ovf.exists())
            self.assertIn(OVF_NS, ovf.read_text(encoding="utf-8"))

    def test_batch_order_and_disks(self):
        with tempfile.TemporaryDirectory() as td:
            env = self._exporter(_two_vm_api()).process(Path(td), "pkg", ["vm-uuid-2", "alpha"])

            self.assertEqual([vs.name for vs in env.systems], ["beta", "alpha"])
            self.assertEqual(sorted(env.filenames()), ["vdi-uuid-0.vhd", "vdi-uuid-1.vhd"])
            self.assertEqual(list(env.networks), ["net-uuid-1"])

            (transport,) = RecordingTransport.instances
            self.assertEqual(transport.copied, ["vdi-uuid-1", "vdi-uuid-0"])
            self.assertEqual(transport.worker_token, "tok123")
            self.assertIsNotNone(transport.network)
            self.assertTrue(transport.closed)

    def test_completed_event_is_last(self):
        with tempfile.TemporaryDirectory() as td:
            self._exporter(_two_vm_api()).process(Path(td), "pkg", ["alpha"])
            self.assertEqual(self.sink.messages[-1], "Export completed")

    def test_no_auto_save(self):
        with tempfile.TemporaryDirectory() as td:
            self._exporter(make_api(), ExportOptions(auto_save=False, metadata_only=True)).process(
                Path(td), "pkg", ["alpha"]
            )
            self.assertFalse((Path(td) / "pkg.ovf").exists())

    def test_first_failure_aborts_batch(self):
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(VMNotFoundError):
                self._exporter(_two_vm_api()).process(Path(td), "pkg", ["alpha", "ghost", "beta"])

            (transport,) = RecordingTransport.instances
            self.assertEqual(transport.copied, ["vdi-uuid-0"])
            self.assertTrue(transport.closed)
            self.assertFalse((Path(td) / "pkg.ovf").exists())
            self.assertNotIn("Export completed", self.sink.messages)

    def test_running_vm_aborts_batch(self):
        api = make_api(power_state="Running")
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(InvalidVMStateError):
                self._exporter(api).process(Path(td), "pkg", ["alpha"])
            self.assertEqual(RecordingTransport.instances[0].copied, [])

    def test_disk_failure_propagates(self):
        def factory(*a, **kw):
            return RecordingTransport(*a, fail_on="vdi-uuid-0", **kw)

        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(DiskTransferError):
                self._exporter(_two_vm_api(), factory=factory).process(Path(td), "pkg", ["alpha", "beta"])
            (transport,) = RecordingTransport.instances
            self.assertEqual(transport.copied, [])
            self.assertTrue(transport.closed)

    def test_cancel_sets_token(self):
        exporter = self._exporter(make_api())
        exporter.cancel()
        self.assertTrue(exporter.token.is_cancelled)


if __name__ == "__main__":
    unittest.main()
