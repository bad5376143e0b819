# SPDX-License-Identifier: LGPL-3.0-or-later
import logging

import pytest

from fakes.fake_http import FakeHTTPSession, FakeResponse, fake_http_client
from fakes.fake_xenapi import make_api, make_client
from xen2ovf.core.cancel import CancellationToken
from xen2ovf.core.exceptions import DiskTransferError, ExportCancelled, XenAPIError
from xen2ovf.export import vhd
from xen2ovf.export.events import EventReporter, RecordingEventSink
from xen2ovf.export.models import ExportOptions, TransferNetwork, VdiReference
from xen2ovf.export.progress import NoopProgressReporter
from xen2ovf.export.transport import HTTPDiskTransport, VerificationError
from xen2ovf.ovf.envelope import Envelope

BODY = bytes(range(256)) * 8  # 2 KiB


def _envelope_with_disk(storage_id="vdi-uuid-0", ext="vhd"):
    env = Envelope(name="pkg")
    vs_id = env.add_virtual_system("alpha")
    env.add_virtual_hardware_section(vs_id)
    disk = env.add_disk(vs_id, f"disk-{storage_id}", f"{storage_id}.{ext}", True, "Disk 0", "", 0, len(BODY))
    ref = VdiReference(vdi_ref="OpaqueRef:vdi0", storage_id=storage_id, file_id=disk.file_id, index=0)
    return env, ref


def _transport(session, *, api=None, options=None, token=None, logger=None):
    reporter = EventReporter()
    sink = RecordingEventSink()
    reporter.subscribe(sink)
    token = token or CancellationToken()
    transport = HTTPDiskTransport(
        logger or logging.getLogger("xen2ovf.tests"),
        make_client(api or make_api()),
        options or ExportOptions(chunk_bytes=512),
        token,
        reporter,
        worker_token="abc123",
        http_client=fake_http_client(session),
        progress=NoopProgressReporter(),
    )
    return transport, sink, token


@pytest.mark.unit
class TestCopyDisks:
    def test_copies_into_fixed_vhd(self, tmp_path):
        session = FakeHTTPSession({"OpaqueRef:vdi0": FakeResponse(BODY)})
        transport, sink, _ = _transport(session)
        env, ref = _envelope_with_disk()
        refs = [ref]

        written = transport.copy_disks(env, refs, tmp_path)

        assert written == [tmp_path / "vdi-uuid-0.vhd"]
        assert refs == []
        footer = vhd.read_footer(written[0])
        assert footer.current_size == len(BODY)
        with vhd.open_existing(written[0]) as content:
            assert content.read() == BODY

        url, params = session.requests[0]
        assert url == "https://xen.example.com/export_raw_vdi"
        assert params == {"session_id": "OpaqueRef:session", "vdi": "OpaqueRef:vdi0", "format": "raw"}
        assert sink.messages == [
            "Setting up transfer of vdi-uuid-0.vhd",
            "Cleaning up transfer of vdi-uuid-0.vhd",
        ]

    def test_collision_renames_and_patches_envelope(self, tmp_path):
        (tmp_path / "vdi-uuid-0.vhd").write_bytes(b"someone else's disk")
        session = FakeHTTPSession({"OpaqueRef:vdi0": FakeResponse(BODY)})
        transport, _, _ = _transport(session)
        env, ref = _envelope_with_disk()

        written = transport.copy_disks(env, [ref], tmp_path)

        assert written == [tmp_path / "vdi-uuid-0_abc123.vhd"]
        assert env.files[ref.file_id].href == "vdi-uuid-0_abc123.vhd"
        assert (tmp_path / "vdi-uuid-0.vhd").read_bytes() == b"someone else's disk"

    def test_length_from_vdi_record_when_chunked(self, tmp_path):
        api = make_api()
        api.add("VDI", "OpaqueRef:vdi0", uuid="vdi-uuid-0", virtual_size=str(len(BODY)))
        session = FakeHTTPSession({"OpaqueRef:vdi0": FakeResponse(BODY, content_length=False)})
        transport, _, _ = _transport(session, api=api)
        env, ref = _envelope_with_disk()

        written = transport.copy_disks(env, [ref], tmp_path)
        assert vhd.read_footer(written[0]).current_size == len(BODY)

    def test_verify_passes(self, tmp_path):
        session = FakeHTTPSession({"OpaqueRef:vdi0": FakeResponse(BODY)})
        transport, _, _ = _transport(session, options=ExportOptions(chunk_bytes=512, verify_disks=True))
        env, ref = _envelope_with_disk()

        written = transport.copy_disks(env, [ref], tmp_path)
        assert written[0].exists()


@pytest.mark.unit
class TestFailures:
    def test_http_error_wraps_and_clears_queue(self, tmp_path):
        session = FakeHTTPSession({})
        transport, sink, _ = _transport(session)
        env, ref = _envelope_with_disk()
        refs = [ref]

        with pytest.raises(DiskTransferError) as exc:
            transport.copy_disks(env, refs, tmp_path)

        assert exc.value.context["file"] == "vdi-uuid-0.vhd"
        assert exc.value.context["vdi"] == "vdi-uuid-0"
        assert refs == []
        assert not (tmp_path / "vdi-uuid-0.vhd").exists()
        assert sink.messages[-1] == "Cleaning up transfer of vdi-uuid-0.vhd"

    def test_stream_failure_removes_partial_image(self, tmp_path):
        session = FakeHTTPSession({"OpaqueRef:vdi0": FakeResponse(BODY, fail_after=1024)})
        transport, _, _ = _transport(session)
        env, ref = _envelope_with_disk()

        with pytest.raises(DiskTransferError):
            transport.copy_disks(env, [ref], tmp_path)
        assert list(tmp_path.iterdir()) == []

    def test_short_read_is_a_transfer_error(self, tmp_path):
        response = FakeResponse(BODY)
        response.headers["content-length"] = str(len(BODY) + 512)
        session = FakeHTTPSession({"OpaqueRef:vdi0": response})
        transport, _, _ = _transport(session)
        env, ref = _envelope_with_disk()

        with pytest.raises(DiskTransferError) as exc:
            transport.copy_disks(env, [ref], tmp_path)
        assert "Short read" in str(exc.value.cause)
        assert list(tmp_path.iterdir()) == []

    def test_verify_mismatch_removes_image(self, tmp_path, monkeypatch):
        real_write = vhd.VhdContentStream.write
        monkeypatch.setattr(vhd.VhdContentStream, "write", lambda self, data: real_write(self, bytes(len(data))))
        session = FakeHTTPSession({"OpaqueRef:vdi0": FakeResponse(BODY)})
        transport, sink, _ = _transport(session, options=ExportOptions(chunk_bytes=512, verify_disks=True))
        env, ref = _envelope_with_disk()

        with pytest.raises(DiskTransferError) as exc:
            transport.copy_disks(env, [ref], tmp_path)

        assert isinstance(exc.value.cause, VerificationError)
        assert list(tmp_path.iterdir()) == []
        assert sink.messages == [
            "Setting up transfer of vdi-uuid-0.vhd",
            "Cleaning up transfer of vdi-uuid-0.vhd",
        ]

    def test_failed_disk_skips_remaining_disks(self, tmp_path):
        env, first = _envelope_with_disk()
        vs_id = env.systems[0].system_id
        disk = env.add_disk(vs_id, "disk-vdi-uuid-1", "vdi-uuid-1.vhd", False, "Disk 1", "", 1, len(BODY))
        second = VdiReference(vdi_ref="OpaqueRef:vdi1", storage_id="vdi-uuid-1", file_id=disk.file_id, index=1)
        session = FakeHTTPSession({"OpaqueRef:vdi1": FakeResponse(BODY)})
        transport, _, _ = _transport(session)
        refs = [first, second]

        with pytest.raises(DiskTransferError):
            transport.copy_disks(env, refs, tmp_path)

        assert [params["vdi"] for _, params in session.requests] == ["OpaqueRef:vdi0"]
        assert refs == []
        assert list(tmp_path.iterdir()) == []

    def test_preexisting_file_untouched_on_failure(self, tmp_path):
        (tmp_path / "vdi-uuid-0.vhd").write_bytes(b"keep me")
        session = FakeHTTPSession({})
        transport, _, _ = _transport(session)
        env, ref = _envelope_with_disk()

        with pytest.raises(DiskTransferError):
            transport.copy_disks(env, [ref], tmp_path)
        assert (tmp_path / "vdi-uuid-0.vhd").read_bytes() == b"keep me"


@pytest.mark.unit
class TestCancellation:
    def test_cancel_mid_copy(self, tmp_path):
        token = CancellationToken()
        response = FakeResponse(BODY, on_chunk=lambda sent: token.cancel() if sent >= 1024 else None)
        session = FakeHTTPSession({"OpaqueRef:vdi0": response})
        transport, sink, _ = _transport(session, token=token)
        env, ref = _envelope_with_disk()
        refs = [ref]

        with pytest.raises(ExportCancelled):
            transport.copy_disks(env, refs, tmp_path)

        assert response.closed
        assert refs == []
        assert list(tmp_path.iterdir()) == []
        assert sink.messages[-1] == "Cleaning up transfer of vdi-uuid-0.vhd"

    def test_cancelled_before_start(self, tmp_path):
        token = CancellationToken()
        token.cancel()
        session = FakeHTTPSession({"OpaqueRef:vdi0": FakeResponse(BODY)})
        transport, sink, _ = _transport(session, token=token)
        env, ref = _envelope_with_disk()

        with pytest.raises(ExportCancelled):
            transport.copy_disks(env, [ref], tmp_path)
        assert session.requests == []
        assert sink.events == []


@pytest.mark.unit
class TestNetworkConfiguration:
    def test_default_uses_session_host(self):
        transport, _, _ = _transport(FakeHTTPSession())
        assert transport.configure_network(TransferNetwork()) == "https://xen.example.com"

    def test_static_ipv4(self):
        transport, _, _ = _transport(FakeHTTPSession())
        net = TransferNetwork(static=True, ip="10.0.0.5", netmask="255.255.255.0")
        assert transport.configure_network(net) == "https://10.0.0.5"

    def test_static_ipv6_bracketed(self):
        transport, _, _ = _transport(FakeHTTPSession())
        assert transport.configure_network(TransferNetwork(static=True, ip="fd00::5")) == "https://[fd00::5]"

    def test_static_requires_ip(self):
        with pytest.raises(ValueError):
            TransferNetwork(static=True)

    def test_network_uuid_resolves_master_pif(self):
        api = make_api()
        api.add("network", "OpaqueRef:net1", uuid="net-uuid-1", PIFs=["OpaqueRef:pif1", "OpaqueRef:pif2"])
        api.add("PIF", "OpaqueRef:pif1", host="OpaqueRef:slave", IP="192.168.1.20")
        api.add("PIF", "OpaqueRef:pif2", host="OpaqueRef:master", IP="192.168.1.10")
        api.add("pool", "OpaqueRef:pool", master="OpaqueRef:master")
        transport, _, _ = _transport(FakeHTTPSession(), api=api)

        assert transport.configure_network(TransferNetwork(network_uuid="net-uuid-1")) == "https://192.168.1.10"

    def test_network_without_master_address_falls_back(self):
        api = make_api()
        api.add("network", "OpaqueRef:net1", uuid="net-uuid-1", PIFs=[])
        api.add("pool", "OpaqueRef:pool", master="OpaqueRef:master")
        transport, _, _ = _transport(FakeHTTPSession(), api=api)

        assert transport.configure_network(TransferNetwork(network_uuid="net-uuid-1")) == "https://xen.example.com"

    def test_unknown_network_is_xenapi_error(self):
        transport, _, _ = _transport(FakeHTTPSession())
        with pytest.raises(XenAPIError):
            transport.configure_network(TransferNetwork(network_uuid="nope"))


@pytest.mark.unit
class TestSession:
    def test_session_is_shared_and_closed(self, tmp_path):
        session = FakeHTTPSession({"OpaqueRef:vdi0": FakeResponse(BODY)})
        transport, _, _ = _transport(session, options=ExportOptions(chunk_bytes=512, insecure=True))
        env, ref = _envelope_with_disk()

        transport.copy_disks(env, [ref], tmp_path)
        assert session.verify is False
        assert session.mounted == ["http://", "https://"]

        transport.close()
        assert session.closed

    def test_close_unregisters_cancel_hook(self):
        token = CancellationToken()
        transports = [_transport(FakeHTTPSession(), token=token)[0] for _ in range(3)]
        assert len(token._callbacks) == 3

        for transport in transports:
            transport.close()
        assert token._callbacks == []
