#!/usr/bin/env python3
# -- coding: utf-8 --
#
# build_android.py
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
Android native library build.

Builds one (artifact, architecture) pair into a shared library with
`cargo rustc`, turning the bin/example into a cdylib the NativeActivity
can load. It handles:
- Compiler environment for the cc and cmake crates (CC, CXX, AR, CXXSTDLIB,
  CMAKE_TOOLCHAIN_FILE, CMAKE_GENERATOR, CMAKE_MAKE_PROGRAM)
- The libgcc.a shim that keeps NDK r23+ linkable
- Symbol stripping for release builds
- Locating the produced library and checking its ELF machine
- Bundling the shared libraries it needs (e.g. libc++_shared.so)

The environment is applied to the child process only; the orchestrator's own
os.environ is never modified, so builds for different architectures can run
side by side.
"""

import glob
import os
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Set, Tuple

try:
    from apkgo.build_scripts.build_utils import (
        extract_key_error_lines,
        format_elapsed_time,
        get_elf_arch,
        is_in_lib_list,
    )
    from apkgo.build_scripts.config_resolver import ResolvedConfig
    from apkgo.build_scripts.errors import ArtifactNotProducedError, BuildFailure
    from apkgo.build_scripts.project import ARTIFACT_KIND_EXAMPLE, CrateProject
    from apkgo.build_scripts.toolchain import ABI_ELF_ARCH, TargetToolchain, find_ndk_path
    from apkgo.utils.cmd.cmd_util import child_env, exec_command, format_command
except ImportError:
    from build_utils import extract_key_error_lines, format_elapsed_time, get_elf_arch, is_in_lib_list
    from config_resolver import ResolvedConfig
    from errors import ArtifactNotProducedError, BuildFailure
    from project import ARTIFACT_KIND_EXAMPLE, CrateProject
    from toolchain import ABI_ELF_ARCH, TargetToolchain, find_ndk_path
    from utils.cmd.cmd_util import child_env, exec_command, format_command

# Contents of the libgcc.a shim. NDK r23 dropped libgcc; rustc still asks for
# -lgcc, so point the linker at libunwind instead.
LIBGCC_SHIM = "INPUT(-lunwind)"

CXXSTDLIB_BY_RUNTIME = {
    "shared": "c++",
    "static": "c++_static",
}

CMAKE_GENERATOR = "Unix Makefiles"


@dataclass(frozen=True)
class BuildOutput:
    """One shared library produced for one (artifact, architecture)."""
    artifact: str
    arch: str  # rust target triple
    abi: str
    library_path: str
    load_name: str  # file name inside lib/<abi>/
    bundled_libs: Tuple[str, ...] = field(default=())


def parse_needed_libs(readelf_output: str) -> List[str]:
    """
    Extract NEEDED entries from `llvm-readelf -d` output.

    Example line:
        0x0000000000000001 (NEEDED)  Shared library: [libc++_shared.so]
    """
    needed = []
    for line in (readelf_output or "").splitlines():
        if "(NEEDED)" not in line or "Shared library: [" not in line:
            continue
        lib = line.split("Shared library: [")[-1].split("]")[0]
        if lib and lib not in needed:
            needed.append(lib)
    return needed


def list_platform_libs(lib_dir: Optional[str]) -> Set[str]:
    """Shared libraries the device already provides (libc.so, liblog.so, libandroid.so...)."""
    if not lib_dir or not os.path.isdir(lib_dir):
        return set()
    return {
        name for name in os.listdir(lib_dir)
        if name.endswith(".so") and os.path.isfile(os.path.join(lib_dir, name))
    }


class BuildDriver:
    """
    Runs the cross-compilation of one artifact for one architecture.

    Args:
        project: the crate being built
        release: build with --release
        features: value passed to cargo --features
        nostrip: keep symbols in release builds
        exclude_libs: library names never bundled into the package
    """

    def __init__(self, project: CrateProject, release: bool = False, features: Optional[str] = None,
                 nostrip: bool = False, exclude_libs=()):
        self.project = project
        self.release = release
        self.features = features
        self.nostrip = nostrip
        self.exclude_libs = list(exclude_libs)

    @property
    def profile(self) -> str:
        return "release" if self.release else "debug"

    def build_root(self) -> str:
        return self.project.android_artifacts_dir(self.release)

    def cargo_target_dir(self, toolchain: TargetToolchain) -> str:
        """One cargo target dir per ABI so builds for different ABIs never wait on each other's lock."""
        return os.path.join(self.build_root(), "cargo", toolchain.abi)

    def output_dir(self, config: ResolvedConfig, toolchain: TargetToolchain) -> str:
        """<cargo-target>/<triple>/<profile>[/examples]"""
        out = os.path.join(self.cargo_target_dir(toolchain), toolchain.rust_triple, self.profile)
        if config.artifact_kind == ARTIFACT_KIND_EXAMPLE:
            out = os.path.join(out, "examples")
        return out

    def write_libgcc_shim(self, toolchain: TargetToolchain) -> str:
        shim_dir = os.path.join(self.build_root(), "libgcc-shim", toolchain.abi)
        os.makedirs(shim_dir, exist_ok=True)
        shim_path = os.path.join(shim_dir, "libgcc.a")
        if not os.path.isfile(shim_path):
            with open(shim_path, "w", encoding="utf-8") as f:
                f.write(LIBGCC_SHIM)
        return shim_dir

    def make_env(self, config: ResolvedConfig, toolchain: TargetToolchain) -> Dict[str, str]:
        """
        Environment overlay for one cargo invocation.

        Returns:
            dict: variables merged into a copy of os.environ for the child only
        """
        triple_var = toolchain.rust_triple.upper().replace("-", "_")
        return {
            "CC": toolchain.clang,
            "CXX": toolchain.clangxx,
            "AR": toolchain.archiver,
            "CXXSTDLIB": CXXSTDLIB_BY_RUNTIME[config.cpp_runtime],
            "CMAKE_TOOLCHAIN_FILE": toolchain.descriptor_path,
            "CMAKE_GENERATOR": CMAKE_GENERATOR,
            "CMAKE_MAKE_PROGRAM": toolchain.make,
            f"CARGO_TARGET_{triple_var}_LINKER": toolchain.clang,
            "CARGO_TARGET_DIR": self.cargo_target_dir(toolchain),
        }

    def build_command(self, config: ResolvedConfig, toolchain: TargetToolchain, shim_dir: str) -> List[str]:
        cmd = [
            "cargo", "rustc",
            "--manifest-path", self.project.manifest_path,
            "--target", toolchain.rust_triple,
            f"--{config.artifact_kind}", config.artifact_name,
        ]
        if self.release:
            cmd.append("--release")
        if self.features:
            cmd.extend(["--features", self.features])
        cmd.extend([
            "--",
            "--crate-type=cdylib",
            "-C", "relocation-model=pic",
            "-C", f"link-arg=-L{shim_dir}",
        ])
        if toolchain.libunwind_dir:
            cmd.extend(["-C", f"link-arg=-L{toolchain.libunwind_dir}"])
        if self.release and not self.nostrip:
            cmd.extend(["-C", "link-arg=-s"])
        return cmd

    def find_library(self, config: ResolvedConfig, toolchain: TargetToolchain) -> Optional[str]:
        """
        Locate lib<name>.so produced by cargo.

        Cargo uplifts the library into the profile (or examples/) directory;
        when it does not, the newest hashed copy in deps/ is used.
        """
        out_dir = self.output_dir(config, toolchain)
        file_name = f"lib{config.lib_name}.so"
        direct = os.path.join(out_dir, file_name)
        if os.path.isfile(direct):
            return direct

        search_dirs = [out_dir]
        if config.artifact_kind != ARTIFACT_KIND_EXAMPLE:
            search_dirs.append(os.path.join(out_dir, "deps"))
        candidates = []
        for search_dir in search_dirs:
            candidates.extend(glob.glob(os.path.join(search_dir, f"lib{config.lib_name}-*.so")))
        if not candidates:
            return None
        return max(candidates, key=os.path.getmtime)

    def list_needed_libs(self, toolchain: TargetToolchain, library_path: str) -> List[str]:
        code, output = exec_command([toolchain.readelf, "-d", library_path])
        if code != 0:
            print(f"⚠️  llvm-readelf failed on {library_path}, skipping dependency bundling")
            return []
        return parse_needed_libs(output)

    def _platform_lib_dir(self, toolchain: TargetToolchain) -> Optional[str]:
        found = find_ndk_path(
            toolchain.api_level,
            lambda level: os.path.join(toolchain.sysroot_lib_dir(), str(level)),
        )
        return found[0] if found else None

    def collect_bundled_libs(self, config: ResolvedConfig, toolchain: TargetToolchain,
                             library_path: str) -> Tuple[str, ...]:
        """
        Find every non-platform shared library the built library needs, recursively.

        Search order: the NDK sysroot library dir, then cargo's deps/ dir.
        """
        search_paths = [
            toolchain.sysroot_lib_dir(),
            os.path.join(self.cargo_target_dir(toolchain), toolchain.rust_triple, self.profile, "deps"),
        ]
        # the platform libraries count as already processed
        processed = set(list_platform_libs(self._platform_lib_dir(toolchain)))
        processed.add(os.path.basename(library_path))
        pending = self.list_needed_libs(toolchain, library_path)
        bundled = []
        while pending:
            lib = pending.pop(0)
            if lib in processed:
                continue
            processed.add(lib)
            if is_in_lib_list(lib, self.exclude_libs):
                continue
            path = next(
                (os.path.join(p, lib) for p in search_paths if os.path.isfile(os.path.join(p, lib))),
                None,
            )
            if path is None:
                print(f"⚠️  {config.artifact_name} [{toolchain.abi}]: shared library \"{lib}\" not found, not bundled")
                continue
            bundled.append(path)
            pending.extend(self.list_needed_libs(toolchain, path))
        return tuple(bundled)

    def build(self, config: ResolvedConfig, toolchain: TargetToolchain) -> BuildOutput:
        """
        Build one artifact for one architecture.

        Raises:
            BuildFailure: If cargo exits non-zero
            ArtifactNotProducedError: If cargo succeeded but lib<name>.so is missing
                or was built for another architecture
        """
        start_time = time.time()
        shim_dir = self.write_libgcc_shim(toolchain)
        cmd = self.build_command(config, toolchain, shim_dir)
        env = child_env(self.make_env(config, toolchain))

        print(f"🔨 Building {config.artifact_kind} '{config.artifact_name}' for {toolchain.rust_triple} "
              f"(API {toolchain.api_level}, {self.profile})")
        print(f"   {format_command(cmd)}")
        code, output = exec_command(cmd, cwd=self.project.root_dir, env=env)
        if code != 0:
            print(f"❌ {config.artifact_name} [{toolchain.abi}] failed with exit code {code}")
            for line in extract_key_error_lines(output):
                print(f"   {line}")
            raise BuildFailure(config.artifact_name, toolchain.rust_triple, code, output)

        library_path = self.find_library(config, toolchain)
        if library_path is None:
            raise ArtifactNotProducedError(
                f"cargo succeeded but lib{config.lib_name}.so was not found in "
                f"{self.output_dir(config, toolchain)}",
                artifact=config.artifact_name,
                arch=toolchain.rust_triple,
            )

        elf_arch = get_elf_arch(library_path)
        expected = ABI_ELF_ARCH[toolchain.abi]
        if elf_arch is not None and elf_arch != expected:
            raise ArtifactNotProducedError(
                f"{library_path} is built for {elf_arch}, expected {expected}",
                artifact=config.artifact_name,
                arch=toolchain.rust_triple,
            )

        bundled = self.collect_bundled_libs(config, toolchain, library_path)
        elapsed = format_elapsed_time(time.time() - start_time)
        print(f"✅ {config.artifact_name} [{toolchain.abi}] built in {elapsed}")
        return BuildOutput(
            artifact=config.artifact_name,
            arch=toolchain.rust_triple,
            abi=toolchain.abi,
            library_path=library_path,
            load_name=f"lib{config.lib_name}.so",
            bundled_libs=bundled,
        )
