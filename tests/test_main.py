"""
Tests for the dtbtree command line.

SPDX-License-Identifier: BSD-3-Clause
"""

import sys

import pytest

from dtbtree.__main__ import DTBTREE_VERSION, load_config, main

from fdt_blobs import FdtBlobBuilder, SAMPLE_TREE


def run(monkeypatch, *args):
    monkeypatch.setattr(sys, "argv", ["dtbtree", *[str(a) for a in args]])
    return main()


class TestMain:
    """Tests for decoding and printing through main()."""

    def test_prints_tree(self, monkeypatch, capsys, sample_dtb_file):
        assert run(monkeypatch, sample_dtb_file) == 0

        out = capsys.readouterr().out
        assert out.startswith("/dts-v1/;")
        assert "/ {" in out
        assert "                cpu@3 {" in out
        assert "/* 2 MiB */" in out

    def test_default_types(self, monkeypatch, capsys, sample_dtb_file):
        run(monkeypatch, sample_dtb_file)

        assert '        bootargs = "console=ttyS0";' in capsys.readouterr().out

    def test_header(self, monkeypatch, capsys, sample_dtb_file):
        run(monkeypatch, "--header", sample_dtb_file)

        out = capsys.readouterr().out
        assert " * magic: 0xd00dfeed" in out
        assert " * version: 0x11" in out

    def test_reserved(self, monkeypatch, capsys, sample_dtb_file):
        run(monkeypatch, "-r", sample_dtb_file)

        out = capsys.readouterr().out
        assert "/* memory reservation map: 1 entries */" in out
        assert "/*   0x0000000080000000 - 0x0000000080200000 (2 MiB) */" in out

    def test_output_file(self, monkeypatch, capsys, sample_dtb_file, tmp_path):
        output = tmp_path / "sample.dts"

        assert run(monkeypatch, "-o", output, sample_dtb_file) == 0

        assert capsys.readouterr().out == ""
        assert "        cpus {" in output.read_text()

    def test_cfgval_indent(self, monkeypatch, capsys, sample_dtb_file):
        run(monkeypatch, "--cfgval", "output.indent=4", sample_dtb_file)

        out = capsys.readouterr().out
        assert "\n    cpus {\n" in out
        assert "        cpu@0 {\n" in out

    def test_cfgval_human_sizes(self, monkeypatch, capsys, sample_dtb_file):
        run(monkeypatch, "--cfgval", "output.human_sizes=no", sample_dtb_file)

        assert "MiB" not in capsys.readouterr().out

    def test_cfgfile(self, monkeypatch, capsys, sample_dtb_file, tmp_path):
        cfg = tmp_path / "plain.ini"
        cfg.write_text("[output]\nindent = 2\n")

        run(monkeypatch, "--cfgfile", cfg, sample_dtb_file)

        out = capsys.readouterr().out
        # without the [types] section bootargs is not known to be a string
        assert "\n  chosen {\n" in out
        assert "    bootargs = [63 6f 6e 73" in out

    def test_bad_magic(self, monkeypatch, tmp_path):
        builder = FdtBlobBuilder()
        builder.tree(SAMPLE_TREE).end()
        dtb = tmp_path / "bad.dtb"
        dtb.write_bytes(builder.blob(magic=0xfeedd00d))

        with pytest.raises(SystemExit) as e:
            run(monkeypatch, dtb)

        assert e.value.code == 1

    def test_missing_file(self, monkeypatch, tmp_path):
        with pytest.raises(SystemExit) as e:
            run(monkeypatch, tmp_path / "missing.dtb")

        assert e.value.code == 1

    def test_missing_cfgfile(self, monkeypatch, tmp_path, sample_dtb_file):
        with pytest.raises(SystemExit) as e:
            run(monkeypatch, "--cfgfile", tmp_path / "missing.ini", sample_dtb_file)

        assert e.value.code == 1

    def test_bad_type(self, monkeypatch, sample_dtb_file):
        with pytest.raises(SystemExit) as e:
            run(monkeypatch, "--cfgval", "types.bootargs=text", sample_dtb_file)

        assert e.value.code == 1


class TestOptions:
    """Tests for option handling that exits before decoding."""

    def test_version(self, monkeypatch, capsys):
        with pytest.raises(SystemExit) as e:
            run(monkeypatch, "--version")

        assert e.value.code == 0
        assert capsys.readouterr().out.strip() == DTBTREE_VERSION

    def test_help(self, monkeypatch, capsys):
        with pytest.raises(SystemExit) as e:
            run(monkeypatch, "-h")

        assert e.value.code == 0
        assert "Usage: dtbtree" in capsys.readouterr().out

    def test_no_arguments(self, monkeypatch):
        with pytest.raises(SystemExit) as e:
            run(monkeypatch)

        assert e.value.code == 2

    def test_unknown_option(self, monkeypatch, capsys):
        with pytest.raises(SystemExit) as e:
            run(monkeypatch, "--bogus", "x.dtb")

        assert e.value.code == 2


class TestConfig:
    """Tests for configuration loading."""

    def test_packaged_default(self):
        config = load_config(None, [])

        assert config.getint("output", "indent") == 8
        assert config.getboolean("output", "human_sizes")
        assert config.get("types", "bootargs") == "string"

    def test_overrides(self):
        config = load_config(None, ["output.indent=2", "types.linux,initrd-start=u64", "extra.flag"])

        assert config.getint("output", "indent") == 2
        assert config.get("types", "linux,initrd-start") == "u64"
        assert config.getboolean("extra", "flag")
