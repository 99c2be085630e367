"""Tests for NDK toolchain discovery and the generated CMake toolchain file."""

import os
import threading
from pathlib import Path

import pytest

from apkgo.build_scripts.build_utils import get_ndk_host_tag
from apkgo.build_scripts.errors import ConfigError, ToolchainNotFoundError
from apkgo.build_scripts.toolchain import (
    ANDROID_TARGETS,
    ToolchainLocator,
    find_ndk_path,
    get_target,
    parse_build_target,
    render_cmake_toolchain,
)


@pytest.fixture
def locator(fake_ndk: Path, tmp_path: Path) -> ToolchainLocator:
    return ToolchainLocator(str(fake_ndk), str(tmp_path / "build"), host_tag=get_ndk_host_tag())


class TestTargets:
    @pytest.mark.parametrize(
        "value,triple",
        [
            ("armv7", "armv7-linux-androideabi"),
            ("armeabi-v7a", "armv7-linux-androideabi"),
            ("aarch64-linux-android", "aarch64-linux-android"),
            ("arm64-v8a", "aarch64-linux-android"),
            ("x86", "i686-linux-android"),
            ("x86_64", "x86_64-linux-android"),
        ],
    )
    def test_parse_build_target(self, value, triple):
        assert parse_build_target(value).rust_triple == triple

    def test_unknown_target(self):
        with pytest.raises(ConfigError, match="unknown build target 'mips'"):
            parse_build_target("mips")

    def test_non_string_target(self):
        with pytest.raises(ConfigError):
            parse_build_target(7)

    def test_abis_are_distinct(self):
        assert len({t.abi for t in ANDROID_TARGETS}) == len(ANDROID_TARGETS)


class TestFindNdkPath:
    def test_exact_level(self, tmp_path: Path):
        (tmp_path / "21").touch()
        assert find_ndk_path(21, lambda level: str(tmp_path / str(level))) == (str(tmp_path / "21"), 21)

    def test_falls_back_to_lower_level(self, tmp_path: Path):
        (tmp_path / "21").touch()
        assert find_ndk_path(23, lambda level: str(tmp_path / str(level)))[1] == 21

    def test_falls_back_to_higher_level(self, tmp_path: Path):
        (tmp_path / "21").touch()
        assert find_ndk_path(18, lambda level: str(tmp_path / str(level)))[1] == 21

    def test_nothing_found(self, tmp_path: Path):
        assert find_ndk_path(21, lambda level: str(tmp_path / str(level))) is None


class TestToolchainLocator:
    def test_locate(self, locator: ToolchainLocator, fake_ndk: Path):
        toolchain = locator.locate("aarch64-linux-android", 21)

        assert toolchain.abi == "arm64-v8a"
        assert toolchain.api_level == 21
        assert toolchain.clang == os.path.join(locator.bin_dir, "aarch64-linux-android21-clang")
        assert toolchain.clangxx == os.path.join(locator.bin_dir, "aarch64-linux-android21-clang++")
        assert toolchain.archiver == os.path.join(locator.bin_dir, "llvm-ar")
        assert toolchain.sysroot == os.path.join(locator.llvm_root, "sysroot")
        assert toolchain.libunwind_dir.endswith(os.path.join("linux", "aarch64"))
        assert toolchain.platform_lib_dir().endswith(os.path.join("aarch64-linux-android", "21"))

    def test_armv7_uses_armv7a_clang(self, locator: ToolchainLocator):
        toolchain = locator.locate("armv7", 24)

        assert os.path.basename(toolchain.clang) == "armv7a-linux-androideabi24-clang"
        assert toolchain.platform_lib_dir().endswith(os.path.join("arm-linux-androideabi", "24"))

    def test_api_level_fallback(self, locator: ToolchainLocator, capsys):
        toolchain = locator.locate("x86_64-linux-android", 18)

        assert toolchain.api_level == 21
        assert "using API 21" in capsys.readouterr().out

    def test_descriptor_written(self, locator: ToolchainLocator, tmp_path: Path):
        toolchain = locator.locate("i686-linux-android", 21)

        assert toolchain.descriptor_path == str(
            tmp_path / "build" / "toolchains" / "x86-android-21.toolchain.cmake"
        )
        content = Path(toolchain.descriptor_path).read_text()
        assert "set(CMAKE_ANDROID_ARCH_ABI x86)" in content
        assert "set(CMAKE_SYSTEM_VERSION 21)" in content

    def test_descriptors_distinct_per_architecture(self, locator: ToolchainLocator):
        arm = locator.locate("armv7-linux-androideabi", 21)
        arm64 = locator.locate("aarch64-linux-android", 21)

        assert arm.descriptor_path != arm64.descriptor_path
        assert os.path.exists(arm.descriptor_path)
        assert os.path.exists(arm64.descriptor_path)

    def test_cached_per_triple_and_api(self, locator: ToolchainLocator):
        first = locator.locate("aarch64-linux-android", 21)
        second = locator.locate("arm64-v8a", 21)

        assert first is second
        assert len(locator.cached()) == 1

    def test_concurrent_locate_resolves_once(self, locator: ToolchainLocator):
        results = []

        def worker():
            results.append(locator.locate("aarch64-linux-android", 21))

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert all(result is results[0] for result in results)
        assert len(locator.cached()) == 1

    def test_missing_ndk(self, tmp_path: Path):
        locator = ToolchainLocator(str(tmp_path / "nope"), str(tmp_path / "build"), host_tag="linux-x86_64")
        with pytest.raises(ToolchainNotFoundError) as exc_info:
            locator.locate("aarch64-linux-android", 21)
        assert exc_info.value.arch == "aarch64-linux-android"

    def test_missing_clang(self, locator: ToolchainLocator):
        for name in os.listdir(locator.bin_dir):
            if name.startswith("aarch64-linux-android"):
                os.remove(os.path.join(locator.bin_dir, name))
        with pytest.raises(ToolchainNotFoundError, match="clang"):
            locator.locate("aarch64-linux-android", 21)

    def test_missing_archiver(self, locator: ToolchainLocator):
        os.remove(os.path.join(locator.bin_dir, "llvm-ar"))
        with pytest.raises(ToolchainNotFoundError, match="llvm-ar"):
            locator.locate("aarch64-linux-android", 21)


class TestRenderCmakeToolchain:
    def test_pure_function_of_inputs(self):
        target = get_target("aarch64-linux-android")
        args = (target, 21, "/ndk/clang", "/ndk/clang++", "/ndk/llvm-ar", "/ndk/sysroot")

        assert render_cmake_toolchain(*args) == render_cmake_toolchain(*args)

    def test_windows_paths_use_forward_slashes(self):
        target = get_target("armv7")
        content = render_cmake_toolchain(target, 21, "C:\\ndk\\clang.cmd", "C:\\ndk\\clang++.cmd",
                                         "C:\\ndk\\llvm-ar.exe", "C:\\ndk\\sysroot")

        assert 'set(CMAKE_C_COMPILER "C:/ndk/clang.cmd")' in content
        assert "set(CMAKE_SYSTEM_PROCESSOR armv7-a)" in content
