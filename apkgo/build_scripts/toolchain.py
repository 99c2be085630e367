#!/usr/bin/env python3
# -- coding: utf-8 --
#
# toolchain.py
# apkgo
#
# Copyright 2024 apkgo Project Authors. All rights reserved.
# Use of this source code is governed by a MIT-style
# license that can be found at
#
# https://opensource.org/license/MIT
#
# The above copyright notice and this permission
# notice shall be included in all copies or
# substantial portions of the Software.

"""
Android NDK toolchain discovery.

Maps every supported Rust target triple to its Android ABI and NDK names,
resolves the per-API-level clang wrappers, archiver, readelf and sysroot inside
an NDK installation, and writes the CMake toolchain file handed to build
scripts that drive CMake (the `cmake` crate).

NDK layout used (r19+):
    <ndk>/toolchains/llvm/prebuilt/<host-tag>/bin/<llvm-triple><api>-clang
    <ndk>/toolchains/llvm/prebuilt/<host-tag>/bin/llvm-ar
    <ndk>/toolchains/llvm/prebuilt/<host-tag>/sysroot
    <ndk>/prebuilt/<host-tag>/bin/make
"""

import os
import tempfile
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple

try:
    from apkgo.build_scripts.build_utils import (
        executable_suffix_cmd,
        executable_suffix_exe,
        get_ndk_host_tag,
    )
    from apkgo.build_scripts.errors import ConfigError, ToolchainNotFoundError
except ImportError:
    from build_utils import executable_suffix_cmd, executable_suffix_exe, get_ndk_host_tag
    from errors import ConfigError, ToolchainNotFoundError


@dataclass(frozen=True)
class AndroidTarget:
    """One Android architecture as seen by rustc, the NDK and the package layout."""
    rust_triple: str
    abi: str
    ndk_triple: str  # sysroot/usr/lib/<ndk_triple>
    llvm_triple: str  # <llvm_triple><api>-clang
    clang_arch: str  # lib/clang/<ver>/lib/linux/<clang_arch>
    processor: str  # CMAKE_SYSTEM_PROCESSOR
    alias: str


ANDROID_TARGETS = (
    AndroidTarget(
        rust_triple="armv7-linux-androideabi",
        abi="armeabi-v7a",
        ndk_triple="arm-linux-androideabi",
        llvm_triple="armv7a-linux-androideabi",
        clang_arch="arm",
        processor="armv7-a",
        alias="armv7",
    ),
    AndroidTarget(
        rust_triple="aarch64-linux-android",
        abi="arm64-v8a",
        ndk_triple="aarch64-linux-android",
        llvm_triple="aarch64-linux-android",
        clang_arch="aarch64",
        processor="aarch64",
        alias="aarch64",
    ),
    AndroidTarget(
        rust_triple="i686-linux-android",
        abi="x86",
        ndk_triple="i686-linux-android",
        llvm_triple="i686-linux-android",
        clang_arch="i386",
        processor="i686",
        alias="i686",
    ),
    AndroidTarget(
        rust_triple="x86_64-linux-android",
        abi="x86_64",
        ndk_triple="x86_64-linux-android",
        llvm_triple="x86_64-linux-android",
        clang_arch="x86_64",
        processor="x86_64",
        alias="x86_64",
    ),
)

# ELF machine reported by build_utils.get_elf_arch() for each ABI
ABI_ELF_ARCH = {
    "armeabi-v7a": "arm",
    "arm64-v8a": "aarch64",
    "x86": "x86",
    "x86_64": "x86_64",
}

_TARGET_LOOKUP: Dict[str, AndroidTarget] = {}
for _target in ANDROID_TARGETS:
    _TARGET_LOOKUP[_target.rust_triple] = _target
    _TARGET_LOOKUP[_target.abi] = _target
    _TARGET_LOOKUP[_target.alias] = _target


def parse_build_target(value) -> AndroidTarget:
    """
    Normalize a configured build target to its AndroidTarget.

    Accepts full triples, the short aliases (armv7, aarch64, i686, x86_64)
    and ABI names (armeabi-v7a, arm64-v8a, x86).

    Raises:
        ConfigError: If the value names no supported Android target
    """
    if not isinstance(value, str):
        raise ConfigError(f"build target must be a string, got {value!r}")
    target = _TARGET_LOOKUP.get(value.strip())
    if target is None:
        supported = ", ".join(t.rust_triple for t in ANDROID_TARGETS)
        raise ConfigError(f"unknown build target '{value}' (supported: {supported})")
    return target


def get_target(rust_triple: str) -> AndroidTarget:
    return parse_build_target(rust_triple)


def find_ndk_path(api_level: int, path_builder: Callable[[int], str]) -> Optional[Tuple[str, int]]:
    """
    Find the NDK file for an API level, falling back the way the NDK build does.

    Tries the requested level first, then every lower level down to 2, then
    every higher level up to 99. Newer NDKs drop the oldest levels, so a low
    min-API usually lands on the NDK's lowest supported level.

    Returns:
        tuple: (path, api_level_found) or None when nothing exists
    """
    level = api_level
    while level > 1:
        path = path_builder(level)
        if os.path.exists(path):
            return path, level
        level -= 1

    level = api_level
    while level < 100:
        path = path_builder(level)
        if os.path.exists(path):
            return path, level
        level += 1
    return None


@dataclass(frozen=True)
class TargetToolchain:
    """Resolved tool paths for one (architecture, API level). Shared by every artifact."""
    target: AndroidTarget
    api_level: int
    clang: str
    clangxx: str
    archiver: str
    readelf: str
    sysroot: str
    make: str
    descriptor_path: str
    libunwind_dir: Optional[str] = None

    @property
    def rust_triple(self) -> str:
        return self.target.rust_triple

    @property
    def abi(self) -> str:
        return self.target.abi

    def platform_lib_dir(self) -> str:
        """sysroot/usr/lib/<ndk-triple>/<api>: libraries the device already provides."""
        return os.path.join(
            self.sysroot, "usr", "lib", self.target.ndk_triple, str(self.api_level)
        )

    def sysroot_lib_dir(self) -> str:
        return os.path.join(self.sysroot, "usr", "lib", self.target.ndk_triple)


def render_cmake_toolchain(target: AndroidTarget, api_level: int, clang: str,
                           clangxx: str, archiver: str, sysroot: str) -> str:
    """CMake toolchain file contents, a pure function of its inputs."""

    def cmake_path(path):
        # forward slashes even on windows to avoid escaping issues
        return path.replace("\\", "/")

    lines = [
        "# Generated by apkgo. Do not edit.",
        "set(CMAKE_SYSTEM_NAME Android)",
        f"set(CMAKE_SYSTEM_VERSION {api_level})",
        f"set(CMAKE_SYSTEM_PROCESSOR {target.processor})",
        f"set(CMAKE_ANDROID_ARCH_ABI {target.abi})",
        f"set(ANDROID_ABI {target.abi})",
        f"set(ANDROID_PLATFORM android-{api_level})",
        f'set(CMAKE_C_COMPILER "{cmake_path(clang)}")',
        f'set(CMAKE_CXX_COMPILER "{cmake_path(clangxx)}")',
        f'set(CMAKE_AR "{cmake_path(archiver)}" CACHE FILEPATH "Archiver")',
        f'set(CMAKE_SYSROOT "{cmake_path(sysroot)}")',
        f'set(CMAKE_FIND_ROOT_PATH "{cmake_path(sysroot)}")',
        "set(CMAKE_FIND_ROOT_PATH_MODE_PROGRAM NEVER)",
        "set(CMAKE_FIND_ROOT_PATH_MODE_LIBRARY ONLY)",
        "set(CMAKE_FIND_ROOT_PATH_MODE_INCLUDE ONLY)",
        "set(CMAKE_FIND_ROOT_PATH_MODE_PACKAGE ONLY)",
    ]
    return "\n".join(lines) + "\n"


def write_file_atomically(path: str, content: str):
    """Write through a temp file in the same directory and rename over the target."""
    directory = os.path.dirname(path)
    os.makedirs(directory, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(prefix=".tmp-", dir=directory)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


class ToolchainLocator:
    """
    Resolves the NDK toolchain for each target architecture.

    One locator is shared by every build task of a run. Results are cached per
    (rust triple, API level); the cache is lock protected so concurrent tasks
    targeting the same architecture get the same TargetToolchain and the
    toolchain file is written once.
    """

    def __init__(self, ndk_path: str, build_dir: str, host_tag: Optional[str] = None):
        self.ndk_path = ndk_path
        self.build_dir = build_dir
        self.host_tag = host_tag or get_ndk_host_tag()
        self._cache: Dict[Tuple[str, int], TargetToolchain] = {}
        self._lock = threading.Lock()

    @property
    def llvm_root(self) -> str:
        return os.path.join(self.ndk_path, "toolchains", "llvm", "prebuilt", self.host_tag)

    @property
    def bin_dir(self) -> str:
        return os.path.join(self.llvm_root, "bin")

    def make_path(self) -> str:
        return os.path.join(
            self.ndk_path, "prebuilt", self.host_tag, "bin", "make" + executable_suffix_exe()
        )

    def descriptor_path(self, target: AndroidTarget, api_level: int) -> str:
        return os.path.join(
            self.build_dir, "toolchains", f"{target.abi}-android-{api_level}.toolchain.cmake"
        )

    def _find_clang(self, target: AndroidTarget, api_level: int, suffix: str):
        found = find_ndk_path(
            api_level,
            lambda level: os.path.join(
                self.bin_dir,
                f"{target.llvm_triple}{level}-{suffix}{executable_suffix_cmd()}",
            ),
        )
        if found is None:
            raise ToolchainNotFoundError(
                f"unable to find NDK {suffix} for {target.llvm_triple} (API {api_level}) in {self.bin_dir}",
                arch=target.rust_triple,
            )
        return found

    def _find_llvm_tool(self, target: AndroidTarget, name: str) -> str:
        # NDK r23 renamed <triple>-ar/<triple>-readelf to llvm-ar/llvm-readelf
        path = os.path.join(self.bin_dir, name + executable_suffix_exe())
        if not os.path.exists(path):
            raise ToolchainNotFoundError(f"unable to find {name} at {path}", arch=target.rust_triple)
        return path

    def find_libunwind_dir(self, target: AndroidTarget) -> Optional[str]:
        """lib/clang/<version>/lib/linux/<arch> holding libunwind.a, if the NDK has one."""
        clang_dir = os.path.join(self.llvm_root, "lib", "clang")
        if not os.path.isdir(clang_dir):
            # older NDKs use lib64/
            clang_dir = os.path.join(self.llvm_root, "lib64", "clang")
        if not os.path.isdir(clang_dir):
            return None
        for version in sorted(os.listdir(clang_dir), reverse=True):
            libunwind_dir = os.path.join(clang_dir, version, "lib", "linux", target.clang_arch)
            if os.path.exists(os.path.join(libunwind_dir, "libunwind.a")):
                return libunwind_dir
        return None

    def _resolve(self, target: AndroidTarget, api_level: int) -> TargetToolchain:
        if not os.path.isdir(self.ndk_path):
            raise ToolchainNotFoundError(f"NDK not found at {self.ndk_path}", arch=target.rust_triple)

        clang, found_level = self._find_clang(target, api_level, "clang")
        clangxx, _ = self._find_clang(target, found_level, "clang++")
        archiver = self._find_llvm_tool(target, "llvm-ar")
        readelf = self._find_llvm_tool(target, "llvm-readelf")
        sysroot = os.path.join(self.llvm_root, "sysroot")
        if not os.path.isdir(sysroot):
            raise ToolchainNotFoundError(f"NDK sysroot not found at {sysroot}", arch=target.rust_triple)

        descriptor = self.descriptor_path(target, found_level)
        write_file_atomically(
            descriptor,
            render_cmake_toolchain(target, found_level, clang, clangxx, archiver, sysroot),
        )

        if found_level != api_level:
            print(f"⚠️  {target.rust_triple}: NDK has no API {api_level} compiler, using API {found_level}")

        return TargetToolchain(
            target=target,
            api_level=found_level,
            clang=clang,
            clangxx=clangxx,
            archiver=archiver,
            readelf=readelf,
            sysroot=sysroot,
            make=self.make_path(),
            descriptor_path=descriptor,
            libunwind_dir=self.find_libunwind_dir(target),
        )

    def locate(self, rust_triple: str, api_level: int) -> TargetToolchain:
        """
        Resolve the toolchain for an architecture and API level.

        Args:
            rust_triple: Rust target triple (aliases and ABI names are accepted too)
            api_level: requested platform API level (the min-API of the package)

        Returns:
            TargetToolchain: cached per (triple, API level)

        Raises:
            ToolchainNotFoundError: If clang, clang++, llvm-ar, llvm-readelf or the sysroot is absent
        """
        target = parse_build_target(rust_triple)
        key = (target.rust_triple, api_level)
        with self._lock:
            toolchain = self._cache.get(key)
            if toolchain is None:
                toolchain = self._resolve(target, api_level)
                self._cache[key] = toolchain
        return toolchain

    def cached(self) -> List[TargetToolchain]:
        with self._lock:
            return list(self._cache.values())
