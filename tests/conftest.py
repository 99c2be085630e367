"""Pytest fixtures for apkgo tests: fake crates, NDK/SDK trees and external tools."""

import os
import threading
import zipfile
from pathlib import Path

import pytest

from apkgo.build_scripts import build_android, deploy, package, signer
from apkgo.build_scripts.build_utils import get_ndk_host_tag
from apkgo.build_scripts.toolchain import ANDROID_TARGETS

NDK_API_LEVELS = (21, 24)


def write_crate(root: Path, cargo_toml: str, bins=(), examples=(), main=True) -> Path:
    """Create a crate on disk. Returns the Cargo.toml path."""
    root.mkdir(parents=True, exist_ok=True)
    (root / "Cargo.toml").write_text(cargo_toml)
    src = root / "src"
    src.mkdir(exist_ok=True)
    if main:
        (src / "main.rs").write_text("fn main() {}\n")
    for name in bins:
        (src / "bin").mkdir(exist_ok=True)
        (src / "bin" / f"{name}.rs").write_text("fn main() {}\n")
    for name in examples:
        (root / "examples").mkdir(exist_ok=True)
        (root / "examples" / f"{name}.rs").write_text("fn main() {}\n")
    return root / "Cargo.toml"


@pytest.fixture
def crate_factory(tmp_path: Path):
    def factory(cargo_toml: str, bins=(), examples=(), main=True, name="crate") -> Path:
        return write_crate(tmp_path / name, cargo_toml, bins=bins, examples=examples, main=main)

    return factory


def _touch(path: Path, content: str = "") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content)
    return path


@pytest.fixture
def fake_ndk(tmp_path: Path) -> Path:
    """NDK tree with clang wrappers for API 21 and 24, llvm tools, sysroot and make."""
    ndk = tmp_path / "ndk" / "25.2.9519653"
    prebuilt = ndk / "toolchains" / "llvm" / "prebuilt" / get_ndk_host_tag()
    for target in ANDROID_TARGETS:
        for api in NDK_API_LEVELS:
            _touch(prebuilt / "bin" / f"{target.llvm_triple}{api}-clang")
            _touch(prebuilt / "bin" / f"{target.llvm_triple}{api}-clang++")
            _touch(prebuilt / "sysroot" / "usr" / "lib" / target.ndk_triple / str(api) / "libc.so")
            _touch(prebuilt / "sysroot" / "usr" / "lib" / target.ndk_triple / str(api) / "liblog.so")
        _touch(prebuilt / "sysroot" / "usr" / "lib" / target.ndk_triple / "libc++_shared.so", "libc++")
        _touch(prebuilt / "lib" / "clang" / "14.0.7" / "lib" / "linux" / target.clang_arch / "libunwind.a")
    _touch(prebuilt / "bin" / "llvm-ar")
    _touch(prebuilt / "bin" / "llvm-readelf")
    _touch(ndk / "prebuilt" / get_ndk_host_tag() / "bin" / "make")
    _touch(ndk / "source.properties", "Pkg.Desc = Android NDK\nPkg.Revision = 25.2.9519653\n")
    return ndk


@pytest.fixture
def fake_sdk(tmp_path: Path, fake_ndk: Path) -> Path:
    sdk = tmp_path / "sdk"
    for tool in ("aapt", "zipalign", "apksigner"):
        _touch(sdk / "build-tools" / "30.0.3" / tool)
        _touch(sdk / "build-tools" / "34.0.0" / tool)
    _touch(sdk / "platforms" / "android-29" / "android.jar")
    _touch(sdk / "platform-tools" / "adb")
    return sdk


@pytest.fixture
def android_sdk(fake_sdk: Path, fake_ndk: Path):
    from apkgo.build_scripts.sdk import locate_sdk

    return locate_sdk(str(fake_sdk), str(fake_ndk))


@pytest.fixture
def fake_jdk(tmp_path: Path, monkeypatch) -> Path:
    jdk = tmp_path / "jdk"
    _touch(jdk / "bin" / "keytool")
    monkeypatch.setenv("JAVA_HOME", str(jdk))
    monkeypatch.setenv("PATH", "")
    return jdk


def _arg_after(command, flag):
    if flag in command:
        index = command.index(flag)
        if index + 1 < len(command):
            return command[index + 1]
    return None


class FakeTools:
    """
    Stands in for cargo, llvm-readelf, aapt, zipalign, apksigner, keytool and adb.

    Every call is recorded. cargo writes lib<name>.so where the real build would.
    """

    def __init__(self):
        self.calls = []
        self._lock = threading.Lock()
        # (artifact, triple) -> exit code
        self.cargo_failures = {}
        # artifacts whose cargo run succeeds without producing a library
        self.no_output = set()
        # library basename -> list of NEEDED libraries
        self.needed = {}
        self.exit_codes = {}

    def tool_calls(self, tool):
        with self._lock:
            return [call for call in self.calls if call["tool"] == tool]

    def __call__(self, command, cwd=None, env=None, timeout_second=None):
        command = [str(x) for x in command]
        # apksigner may be prefixed with "cmd /C" on windows
        tool = os.path.basename(command[0]) if command[0] != "cmd" else os.path.basename(command[2])
        with self._lock:
            self.calls.append({"tool": tool, "command": command, "cwd": cwd, "env": env})
        handler = getattr(self, "_" + tool.replace("-", "_"), None)
        if tool in self.exit_codes:
            return self.exit_codes[tool], f"error: {tool} failed"
        if handler is None:
            return 0, ""
        return handler(command, cwd, env)

    def _cargo(self, command, cwd, env):
        triple = _arg_after(command, "--target")
        kind = "example" if "--example" in command else "bin"
        name = _arg_after(command, f"--{kind}")
        code = self.cargo_failures.get((name, triple))
        if code:
            return code, f"error[E0425]: cannot find value `x` in this scope\nerror: could not compile `{name}`"
        if name in self.no_output:
            return 0, ""
        profile = "release" if "--release" in command else "debug"
        out_dir = Path(env["CARGO_TARGET_DIR"]) / triple / profile
        if kind == "example":
            out_dir = out_dir / "examples"
        out_dir.mkdir(parents=True, exist_ok=True)
        (out_dir / f"lib{name.replace('-', '_')}.so").write_text(f"{name} {triple}")
        return 0, "Finished"

    def _llvm_readelf(self, command, cwd, env):
        lib = os.path.basename(command[-1])
        lines = [
            f" 0x0000000000000001 (NEEDED)             Shared library: [{needed}]"
            for needed in self.needed.get(lib, [])
        ]
        return 0, "\n".join(lines)

    def _aapt(self, command, cwd, env):
        if command[1] == "package":
            unaligned = _arg_after(command, "-F")
            with zipfile.ZipFile(unaligned, "w") as zf:
                zf.write(os.path.join(cwd, "AndroidManifest.xml"), "AndroidManifest.xml")
        elif command[1] == "add":
            with zipfile.ZipFile(command[2], "a") as zf:
                zf.write(os.path.join(cwd, command[3]), command[3])
        return 0, ""

    def _zipalign(self, command, cwd, env):
        src, dst = command[-2], command[-1]
        with open(os.path.join(cwd, src) if not os.path.isabs(src) else src, "rb") as f:
            data = f.read()
        with open(dst, "wb") as f:
            f.write(data)
        return 0, ""

    def _keytool(self, command, cwd, env):
        _touch(Path(_arg_after(command, "-keystore")), "keystore")
        return 0, ""


@pytest.fixture
def fake_tools(monkeypatch) -> FakeTools:
    tools = FakeTools()
    for module in (build_android, package, signer, deploy):
        monkeypatch.setattr(module, "exec_command", tools)
    return tools
