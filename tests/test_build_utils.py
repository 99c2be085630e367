"""Tests for the shared build helpers."""

import os
import struct
import zipfile
from pathlib import Path

import pytest

from apkgo.build_scripts.build_utils import (
    copy_file,
    elf_machine,
    extract_key_error_lines,
    format_elapsed_time,
    get_elf_arch,
    is_in_lib_list,
    print_zip_tree,
)
from apkgo.utils.cmd.cmd_util import child_env, format_command


def elf_header(machine: int, little_endian: bool = True) -> bytes:
    endian = "<" if little_endian else ">"
    ident = b"\x7fELF" + bytes([1, 1 if little_endian else 2, 1]) + bytes(9)
    return ident + struct.pack(f"{endian}H", 3) + struct.pack(f"{endian}H", machine)


class TestElf:
    @pytest.mark.parametrize("machine,arch", [(0x28, "arm"), (0xB7, "aarch64"), (0x03, "x86"), (0x3E, "x86_64")])
    def test_known_machines(self, machine, arch):
        assert elf_machine(elf_header(machine)) == arch

    def test_big_endian(self):
        assert elf_machine(elf_header(0xB7, little_endian=False)) == "aarch64"

    def test_unknown_machine(self):
        assert elf_machine(elf_header(0x08)) == "unknown(0x8)"

    def test_not_elf(self, tmp_path: Path):
        lib = tmp_path / "libdemo.so"
        lib.write_text("not an elf file at all")

        assert get_elf_arch(str(lib)) is None
        assert get_elf_arch(str(tmp_path / "missing.so")) is None

    def test_file(self, tmp_path: Path):
        lib = tmp_path / "libdemo.so"
        lib.write_bytes(elf_header(0xB7) + bytes(64))

        assert get_elf_arch(str(lib)) == "aarch64"


class TestLibList:
    @pytest.mark.parametrize("entry", ["libc++_shared.so", "libc++_shared", "c++_shared"])
    def test_matches(self, entry):
        assert is_in_lib_list("/sysroot/libc++_shared.so", [entry])

    def test_no_match(self):
        assert not is_in_lib_list("libfoo.so", ["bar", "libbar.so"])


class TestOutputHelpers:
    def test_elapsed_time(self):
        assert format_elapsed_time(12.34) == "12.3s"
        assert format_elapsed_time(125) == "2m 5s"
        assert format_elapsed_time(3 * 3600 + 60 * 7) == "3h 7m"

    def test_key_error_lines(self):
        output = "\n".join([
            "   Compiling demo v0.1.0",
            "error[E0425]: cannot find value `x` in this scope",
            " --> src/main.rs:2:5",
            "  |",
            "warning: unused import",
            "error: could not compile `demo`",
        ])
        lines = extract_key_error_lines(output)

        assert lines[0].startswith("error[E0425]")
        assert "error: could not compile `demo`" in lines
        assert "Compiling demo v0.1.0" not in lines

    def test_key_error_lines_fallback(self):
        assert extract_key_error_lines("one\ntwo\nthree", max_lines=2) == ["two", "three"]

    def test_zip_tree(self, tmp_path: Path, capsys):
        apk = tmp_path / "demo.apk"
        with zipfile.ZipFile(apk, "w") as zf:
            zf.writestr("AndroidManifest.xml", "<manifest/>")
            zf.writestr("lib/arm64-v8a/libdemo.so", elf_header(0xB7) + bytes(64))

        print_zip_tree(str(apk))

        out = capsys.readouterr().out
        assert "APK contents:" in out
        assert "arm64-v8a/" in out
        assert "libdemo.so" in out and "[aarch64]" in out

    def test_zip_tree_missing(self, tmp_path: Path, capsys):
        print_zip_tree(str(tmp_path / "missing.apk"))

        assert "[APK file not found]" in capsys.readouterr().out

    def test_copy_tree_into_existing(self, tmp_path: Path):
        src = tmp_path / "res" / "values"
        src.mkdir(parents=True)
        (src / "strings.xml").write_text("<resources/>")
        (tmp_path / "dst").mkdir()

        copy_file(str(tmp_path / "res"), str(tmp_path / "dst"))

        assert (tmp_path / "dst" / "values" / "strings.xml").exists()


class TestCmdUtil:
    def test_format_command_quotes_spaces(self):
        assert format_command(["cargo", "rustc", "/my dir/Cargo.toml"]) == 'cargo rustc "/my dir/Cargo.toml"'

    def test_child_env_is_a_copy(self, monkeypatch):
        monkeypatch.setenv("APKGO_TEST_VAR", "outer")
        env = child_env({"APKGO_TEST_VAR": "inner", "CC": "/ndk/clang"})

        assert env["APKGO_TEST_VAR"] == "inner"
        assert env["CC"] == "/ndk/clang"
        assert os.environ["APKGO_TEST_VAR"] == "outer"
