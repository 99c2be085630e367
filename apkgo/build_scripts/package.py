#!/usr/bin/env python3
# -- coding: utf-8 --
#
# package.py
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
APK assembly.

Lays out the staging tree for one artifact:

    <android-artifacts>/<profile>/{bin|examples}/<name>/
    ├── AndroidManifest.xml
    ├── lib/
    │   ├── arm64-v8a/lib<name>.so
    │   └── armeabi-v7a/lib<name>.so
    ├── res/        (optional)
    └── assets/     (optional)

then runs `aapt package`, `aapt add` for every native library and
`zipalign`. The aligned, still unsigned APK stays in the staging dir until
`publish()` moves it to <android-artifacts>/<profile>/apk/[examples/]<name>.apk.
Only a finished package ever sits at that path.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional

try:
    from apkgo.build_scripts.build_android import BuildOutput
    from apkgo.build_scripts.build_utils import clean, copy_file, extract_key_error_lines
    from apkgo.build_scripts.config_resolver import ResolvedConfig
    from apkgo.build_scripts.errors import AssemblyError
    from apkgo.build_scripts.project import ARTIFACT_KIND_EXAMPLE, CrateProject
    from apkgo.build_scripts.sdk import AndroidSdk
    from apkgo.build_scripts.toolchain import get_target
    from apkgo.utils.cmd.cmd_util import exec_command, format_command
except ImportError:
    from build_android import BuildOutput
    from build_utils import clean, copy_file, extract_key_error_lines
    from config_resolver import ResolvedConfig
    from errors import AssemblyError
    from project import ARTIFACT_KIND_EXAMPLE, CrateProject
    from sdk import AndroidSdk
    from toolchain import get_target
    from utils.cmd.cmd_util import exec_command, format_command

ZIPALIGN_ALIGNMENT = "4"


@dataclass
class PackageDescriptor:
    """Everything needed to assemble one APK."""
    config: ResolvedConfig
    manifest: str  # rendered AndroidManifest.xml
    outputs: List[BuildOutput] = field(default_factory=list)
    res_dir: Optional[str] = None
    assets_dir: Optional[str] = None

    @property
    def artifact(self) -> str:
        return self.config.artifact_name


def check_architectures(descriptor: PackageDescriptor):
    """
    Every declared architecture must have exactly one BuildOutput and no other may appear.

    Raises:
        AssemblyError: On a missing, duplicated or undeclared architecture
    """
    config = descriptor.config
    declared = list(config.build_targets)
    seen = []
    for output in descriptor.outputs:
        if output.arch not in declared:
            raise AssemblyError(
                f"build output for undeclared architecture {output.arch}",
                artifact=config.artifact_name, arch=output.arch,
            )
        if output.arch in seen:
            raise AssemblyError(
                f"more than one build output for {output.arch}",
                artifact=config.artifact_name, arch=output.arch,
            )
        seen.append(output.arch)
    missing = [arch for arch in declared if arch not in seen]
    if missing:
        raise AssemblyError(
            f"missing build output for {', '.join(missing)}, refusing to build a partial package",
            artifact=config.artifact_name, arch=missing[0],
        )


class PackageAssembler:
    def __init__(self, sdk: AndroidSdk, project: CrateProject, release: bool = False):
        self.sdk = sdk
        self.project = project
        self.release = release

    def _kind_dir(self, config: ResolvedConfig) -> str:
        return "examples" if config.artifact_kind == ARTIFACT_KIND_EXAMPLE else "bin"

    def staging_dir(self, config: ResolvedConfig) -> str:
        return os.path.join(
            self.project.android_artifacts_dir(self.release), self._kind_dir(config), config.artifact_name
        )

    def apk_path(self, config: ResolvedConfig) -> str:
        apk_dir = os.path.join(self.project.android_artifacts_dir(self.release), "apk")
        if config.artifact_kind == ARTIFACT_KIND_EXAMPLE:
            apk_dir = os.path.join(apk_dir, "examples")
        return os.path.join(apk_dir, f"{config.apk_name}.apk")

    def staged_apk_path(self, config: ResolvedConfig) -> str:
        return os.path.join(self.staging_dir(config), f"{config.apk_name}.apk")

    def discard(self, config: ResolvedConfig):
        """Remove the published and the staged APK of an artifact, if any."""
        for path in (self.apk_path(config), self.staged_apk_path(config)):
            if os.path.isfile(path):
                os.remove(path)

    def publish(self, config: ResolvedConfig, apk_path: str) -> str:
        """Move a finished APK to its final path."""
        final_apk = self.apk_path(config)
        os.makedirs(os.path.dirname(final_apk), exist_ok=True)
        os.replace(apk_path, final_apk)
        return final_apk

    def stage(self, descriptor: PackageDescriptor) -> List[str]:
        """
        Build the staging tree.

        Returns:
            list: native library paths relative to the staging dir, forward slashes,
                in build target order
        """
        check_architectures(descriptor)
        config = descriptor.config
        for label, path in (("res", descriptor.res_dir), ("assets", descriptor.assets_dir)):
            if path and not os.path.isdir(path):
                raise AssemblyError(f"{label} directory {path} does not exist", artifact=config.artifact_name)

        staging = self.staging_dir(config)
        clean(staging)

        by_arch = {output.arch: output for output in descriptor.outputs}
        native_libs = []
        for arch in config.build_targets:
            output = by_arch[arch]
            abi = get_target(arch).abi
            entries = [(output.library_path, output.load_name)]
            entries.extend((lib, os.path.basename(lib)) for lib in output.bundled_libs)
            for src, name in entries:
                if not os.path.isfile(src):
                    raise AssemblyError(f"native library {src} is missing", artifact=config.artifact_name, arch=arch)
                # copy, the build output stays where the driver left it
                copy_file(src, os.path.join(staging, "lib", abi, name))
                native_libs.append(f"lib/{abi}/{name}")

        if descriptor.res_dir:
            copy_file(descriptor.res_dir, os.path.join(staging, "res"))
        if descriptor.assets_dir:
            copy_file(descriptor.assets_dir, os.path.join(staging, "assets"))

        with open(os.path.join(staging, "AndroidManifest.xml"), "w", encoding="utf-8", newline="\n") as f:
            f.write(descriptor.manifest)
        return native_libs

    def _run(self, cmd, cwd, config, step):
        print(f"   {format_command(cmd)}")
        code, output = exec_command(cmd, cwd=cwd)
        if code != 0:
            for line in extract_key_error_lines(output):
                print(f"   {line}")
            raise AssemblyError(f"{step} exited with code {code}", artifact=config.artifact_name)
        return output

    def package(self, descriptor: PackageDescriptor) -> str:
        """
        Stage, package and align one APK.

        Returns:
            str: path of the aligned, unsigned APK inside the staging dir

        Raises:
            AssemblyError: On an incomplete architecture set or a tool failure
            ToolchainNotFoundError: If aapt, zipalign or android.jar is missing
        """
        config = descriptor.config
        # architecture check before anything touches the disk
        check_architectures(descriptor)
        aapt = self.sdk.require(self.sdk.aapt)
        zipalign = self.sdk.require(self.sdk.zipalign)
        android_jar = self.sdk.android_jar(config.compile_sdk_version)

        print(f"📦 Packaging {config.artifact_kind} '{config.artifact_name}' ({config.package_name})")
        native_libs = self.stage(descriptor)
        staging = self.staging_dir(config)
        unaligned = os.path.join(staging, f"{config.apk_name}-unaligned.apk")

        cmd = [aapt, "package", "-f", "-F", unaligned, "-M", "AndroidManifest.xml"]
        if descriptor.res_dir:
            cmd.extend(["-S", "res"])
        if descriptor.assets_dir:
            cmd.extend(["-A", "assets"])
        cmd.extend(["-I", android_jar])
        self._run(cmd, staging, config, "aapt package")

        for lib in native_libs:
            self._run([aapt, "add", unaligned, lib], staging, config, "aapt add")

        aligned = self.staged_apk_path(config)
        self._run([zipalign, "-f", ZIPALIGN_ALIGNMENT, unaligned, aligned], staging, config, "zipalign")
        return aligned
