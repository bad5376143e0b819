# SPDX-License-Identifier: LGPL-3.0-or-later
import pytest

from xen2ovf.export.models import VdiReference
from xen2ovf.export.namer import DiskNamer
from xen2ovf.ovf.envelope import Envelope


def _envelope_with_disk(storage_id="X"):
    env = Envelope(name="pkg")
    vs = env.add_virtual_system("alpha")
    env.add_virtual_hardware_section(vs)
    disk = env.add_disk(vs, "d1", f"{storage_id}.vhd", False, "", "", 0, 0)
    return env, VdiReference(vdi_ref="OpaqueRef:vdi", storage_id=storage_id, file_id=disk.file_id, index=0)


@pytest.mark.unit
class TestDiskNamer:
    def test_canonical_name(self, tmp_path):
        env, ref = _envelope_with_disk()
        namer = DiskNamer(tmp_path, "vhd", "tok")

        assert namer.claim(env, ref) == tmp_path / "X.vhd"
        assert env.filename_of("d1") == "X.vhd"

    def test_existing_file_renames_and_patches_envelope(self, tmp_path):
        (tmp_path / "X.vhd").write_bytes(b"older export")
        env, ref = _envelope_with_disk()
        namer = DiskNamer(tmp_path, "vhd", "tok")

        assert namer.claim(env, ref) == tmp_path / "X_tok.vhd"
        assert env.filename_of("d1") == "X_tok.vhd"
        assert (tmp_path / "X.vhd").read_bytes() == b"older export"

    def test_prior_claim_in_same_run_collides(self, tmp_path):
        env, ref = _envelope_with_disk()
        env2, ref2 = _envelope_with_disk()
        namer = DiskNamer(tmp_path, "vhd", "tok")

        first = namer.claim(env, ref)
        second = namer.claim(env2, ref2)

        assert first.name == "X.vhd"
        assert second.name == "X_tok.vhd"
        assert env2.filename_of("d1") == "X_tok.vhd"

    def test_alternative_also_taken(self, tmp_path):
        (tmp_path / "X.vhd").touch()
        (tmp_path / "X_tok.vhd").touch()
        env, ref = _envelope_with_disk()

        assert DiskNamer(tmp_path, ".vhd", "tok").claim(env, ref).name == "X_tok-1.vhd"
