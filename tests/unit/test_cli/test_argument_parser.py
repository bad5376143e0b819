# SPDX-License-Identifier: LGPL-3.0-or-later
"""
Unit tests for CLI parsing: YAML defaults, CLI overrides, validation and
conversion to ExportOptions.
"""

import os
import tempfile
import unittest
from pathlib import Path
from unittest.mock import Mock, patch

from xen2ovf.cli.argument_parser import (
    DEFAULT_PASSWORD_ENV,
    options_from_args,
    parse_args_with_config,
    resolve_password,
)
from xen2ovf.core.utils import MB


class TestTwoPhaseParse(unittest.TestCase):
    def setUp(self):
        self.logger = Mock()

    def _write(self, td, text):
        cfg = Path(td) / "cfg.yaml"
        cfg.write_text(text, encoding="utf-8")
        return str(cfg)

    def test_config_supplies_required_values(self):
        with tempfile.TemporaryDirectory() as td:
            cfg = self._write(td, "host: xen1\nuser: root\nvms: [alpha, beta]\nverify-disks: true\n")
            args, conf, _ = parse_args_with_config(["--config", cfg], logger=self.logger)

            self.assertEqual(args.host, "xen1")
            self.assertEqual(args.vms, ["alpha", "beta"])
            self.assertTrue(args.verify_disks)
            self.assertIn("vms", conf)

    def test_cli_overrides_config(self):
        with tempfile.TemporaryDirectory() as td:
            cfg = self._write(td, "host: xen1\nuser: root\noutput_dir: /from/yaml\nvms: [alpha]\n")
            args, _, _ = parse_args_with_config(
                ["--config", cfg, "--host", "xen2", "--output-dir", "/from/cli", "gamma"],
                logger=self.logger,
            )
            self.assertEqual(args.host, "xen2")
            self.assertEqual(args.output_dir, "/from/cli")
            self.assertEqual(args.vms, ["gamma"])

    def test_later_config_wins(self):
        with tempfile.TemporaryDirectory() as td:
            a = Path(td) / "a.yaml"
            b = Path(td) / "b.yaml"
            a.write_text("host: a\nuser: root\nvms: [alpha]\n", encoding="utf-8")
            b.write_text("host: b\n", encoding="utf-8")
            args, _, _ = parse_args_with_config(["--config", str(a), "--config", str(b)], logger=self.logger)
            self.assertEqual(args.host, "b")

    def test_defaults(self):
        args, conf, _ = parse_args_with_config(["--host", "h", "--user", "u", "alpha"], logger=self.logger)
        self.assertEqual(conf, {})
        self.assertEqual(args.output_dir, "./out")
        self.assertIsNone(args.package_name)
        self.assertTrue(args.auto_save)
        self.assertFalse(args.metadata_only)
        self.assertEqual(args.password_env, DEFAULT_PASSWORD_ENV)


class TestValidation(unittest.TestCase):
    def setUp(self):
        self.logger = Mock()

    def test_missing_host(self):
        with self.assertRaises(SystemExit) as cm:
            parse_args_with_config(["--user", "u", "alpha"], logger=self.logger)
        self.assertIn("--host", str(cm.exception.code))

    def test_no_vms(self):
        with self.assertRaises(SystemExit):
            parse_args_with_config(["--host", "h", "--user", "u"], logger=self.logger)

    def test_non_positive_chunk(self):
        with self.assertRaises(SystemExit):
            parse_args_with_config(["--host", "h", "--user", "u", "--chunk-mb", "0", "alpha"], logger=self.logger)

    def test_static_without_ip(self):
        with self.assertRaises(SystemExit):
            parse_args_with_config(["--host", "h", "--user", "u", "--transfer-static", "alpha"], logger=self.logger)


class TestConversion(unittest.TestCase):
    def _args(self, *extra):
        args, _, _ = parse_args_with_config(["--host", "h", "--user", "u", *extra, "alpha"], logger=Mock())
        return args

    def test_options(self):
        opts = options_from_args(
            self._args("--verify", "--no-auto-save", "--image-ext", ".img", "--chunk-mb", "8", "--insecure")
        )
        self.assertTrue(opts.verify_disks)
        self.assertFalse(opts.auto_save)
        self.assertEqual(opts.image_ext, "img")
        self.assertEqual(opts.chunk_bytes, 8 * MB)
        self.assertTrue(opts.insecure)
        self.assertFalse(opts.network.static)

    def test_static_network(self):
        opts = options_from_args(
            self._args("--transfer-static", "--transfer-ip", "10.0.0.9", "--transfer-netmask", "255.255.255.0")
        )
        self.assertTrue(opts.network.static)
        self.assertEqual(opts.network.ip, "10.0.0.9")

    def test_bad_static_ip(self):
        with self.assertRaises(ValueError):
            options_from_args(self._args("--transfer-static", "--transfer-ip", "not-an-ip"))

    def test_password_from_env(self):
        args = self._args("--password-env", "XEN2OVF_TEST_PW")
        with patch.dict(os.environ, {"XEN2OVF_TEST_PW": "s3cret"}):
            self.assertEqual(resolve_password(args), "s3cret")
        with patch.dict(os.environ, {}, clear=True):
            self.assertIsNone(resolve_password(args))


if __name__ == "__main__":
    unittest.main()
