#!/usr/bin/env python3
# -- coding: utf-8 --
#
# pipeline.py
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
Multi-artifact, multi-architecture build pipeline.

    resolved configs
        │  (manifest validated up front, per artifact)
        ▼
    build pool: one task per (artifact, architecture)
        │  results land in the artifact's ArchitectureBarrier
        ▼
    packaging pool: once every slot of an artifact is filled and none failed
        manifest -> aapt/zipalign -> apksigner -> apk/<name>.apk

Artifacts are independent: a failing architecture stops only its own
artifact at the barrier. Sibling builds of that artifact still run to the
end and the first failure to arrive is reported.
"""

import multiprocessing
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, List, Optional

try:
    from apkgo.build_scripts.build_android import BuildDriver, BuildOutput
    from apkgo.build_scripts.build_utils import format_elapsed_time
    from apkgo.build_scripts.config_resolver import ResolvedConfig
    from apkgo.build_scripts.errors import ApkError, AssemblyError, ToolchainNotFoundError
    from apkgo.build_scripts.manifest import ManifestGenerator
    from apkgo.build_scripts.package import PackageAssembler, PackageDescriptor
    from apkgo.build_scripts.project import CrateProject
    from apkgo.build_scripts.sdk import AndroidSdk
    from apkgo.build_scripts.signer import Signer, SigningIdentity
    from apkgo.build_scripts.toolchain import ToolchainLocator
    from apkgo.utils.context.result import CliResult
except ImportError:
    from build_android import BuildDriver, BuildOutput
    from build_utils import format_elapsed_time
    from config_resolver import ResolvedConfig
    from errors import ApkError, AssemblyError, ToolchainNotFoundError
    from manifest import ManifestGenerator
    from package import PackageAssembler, PackageDescriptor
    from project import CrateProject
    from sdk import AndroidSdk
    from signer import Signer, SigningIdentity
    from toolchain import ToolchainLocator
    from utils.context.result import CliResult


@dataclass
class BuildOptions:
    release: bool = False
    features: Optional[str] = None
    jobs: Optional[int] = None
    nosign: bool = False
    nostrip: bool = False

    @property
    def num_jobs(self) -> int:
        if self.jobs is not None:
            return max(1, self.jobs)
        # Default to CPU count
        return multiprocessing.cpu_count()


class ArchitectureBarrier:
    """
    Fan-in point of one artifact: one write-once slot per declared architecture.

    Safe for concurrent writers. The barrier is complete when every slot is
    filled; the first failure to arrive is remembered.
    """

    def __init__(self, artifact: str, archs):
        self.artifact = artifact
        self.archs = tuple(archs)
        self._slots: Dict[str, CliResult] = {}
        self._first_failure: Optional[ApkError] = None
        self._lock = threading.Lock()

    def put(self, arch: str, result: CliResult) -> bool:
        """
        Fill the slot of one architecture.

        Returns:
            bool: True for exactly one caller, the one whose write completed the barrier

        Raises:
            ValueError: If the architecture is not declared or its slot is already filled
        """
        with self._lock:
            if arch not in self.archs:
                raise ValueError(f"{arch} is not a declared architecture of {self.artifact}")
            if arch in self._slots:
                raise ValueError(f"{self.artifact}: slot for {arch} was already written")
            self._slots[arch] = result
            if result.is_failure() and self._first_failure is None:
                self._first_failure = result.get_error()
            return len(self._slots) == len(self.archs)

    def is_complete(self) -> bool:
        with self._lock:
            return len(self._slots) == len(self.archs)

    def first_failure(self) -> Optional[ApkError]:
        with self._lock:
            return self._first_failure

    def outputs(self) -> List[BuildOutput]:
        """Build outputs in declared architecture order. Only meaningful once complete."""
        with self._lock:
            return [
                self._slots[arch].get_value() for arch in self.archs
                if arch in self._slots and self._slots[arch].is_success()
            ]


@dataclass
class ArtifactReport:
    config: ResolvedConfig
    result: CliResult  # value: APK path, error: ApkError
    signed: bool = False
    elapsed: float = 0.0

    @property
    def artifact(self) -> str:
        return self.config.artifact_name

    @property
    def apk_path(self) -> Optional[str]:
        return self.result.get_value()

    @property
    def error(self) -> Optional[ApkError]:
        return self.result.get_error()


@dataclass
class BuildReport:
    artifacts: List[ArtifactReport] = field(default_factory=list)
    elapsed: float = 0.0

    @property
    def success(self) -> bool:
        return all(report.result.is_success() for report in self.artifacts)

    @property
    def first_error(self) -> Optional[ApkError]:
        for report in self.artifacts:
            if report.result.is_failure():
                return report.error
        return None

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1

    def find(self, artifact: str) -> Optional[ArtifactReport]:
        for report in self.artifacts:
            if report.artifact == artifact:
                return report
        return None

    def print_summary(self):
        print("\n" + "=" * 60)
        print("BUILD SUMMARY")
        print("=" * 60)
        for report in self.artifacts:
            config = report.config
            name = f"{config.artifact_kind} '{config.artifact_name}'"
            if report.result.is_success():
                state = "signed" if report.signed else "unsigned"
                print(f"✅ {name} -> {report.apk_path} ({state}, {format_elapsed_time(report.elapsed)})")
            else:
                print(f"❌ {name}: {report.error.describe()}")
        succeeded = sum(1 for r in self.artifacts if r.result.is_success())
        print("-" * 60)
        print(f"{succeeded}/{len(self.artifacts)} package(s) built in {format_elapsed_time(self.elapsed)}")
        if not self.success:
            print(f"First error: {self.first_error.kind}")
        print("=" * 60)


def _key(config: ResolvedConfig):
    return config.artifact_kind, config.artifact_name


def _attach(error: ApkError, artifact: str, arch: Optional[str] = None) -> ApkError:
    if error.artifact is None:
        error.artifact = artifact
    if error.arch is None and arch is not None:
        error.arch = arch
    return error


class BuildPipeline:
    """
    Runs ConfigResolver output through build, manifest, assembly and signing.

    Collaborators may be passed in; by default they are created from the
    project, SDK and options.
    """

    def __init__(self, project: CrateProject, sdk: AndroidSdk, options: Optional[BuildOptions] = None,
                 identity: Optional[SigningIdentity] = None, locator: Optional[ToolchainLocator] = None,
                 driver: Optional[BuildDriver] = None, assembler: Optional[PackageAssembler] = None,
                 signer: Optional[Signer] = None, exclude_libs=()):
        self.project = project
        self.sdk = sdk
        self.options = options or BuildOptions()
        build_root = project.android_artifacts_dir(self.options.release)
        self.locator = locator or ToolchainLocator(sdk.ndk_path, build_root)
        self.driver = driver or BuildDriver(
            project,
            release=self.options.release,
            features=self.options.features,
            nostrip=self.options.nostrip,
            exclude_libs=exclude_libs,
        )
        self.assembler = assembler or PackageAssembler(sdk, project, release=self.options.release)
        self.signer = signer or Signer(sdk, identity or SigningIdentity.debug())

    def build_one(self, config: ResolvedConfig, arch: str) -> CliResult:
        """One (artifact, architecture) task. Never raises ApkError."""
        try:
            toolchain = self.locator.locate(arch, config.min_sdk_version)
            return CliResult.success(self.driver.build(config, toolchain))
        except ApkError as e:
            return CliResult.failure(_attach(e, config.artifact_name, arch))
        except OSError as e:
            # cargo or an NDK tool could not be started at all
            return CliResult.failure(ToolchainNotFoundError(str(e), artifact=config.artifact_name, arch=arch))

    def package_one(self, config: ResolvedConfig, outputs: List[BuildOutput]) -> CliResult:
        """Manifest, assembly and signing of one artifact whose builds all succeeded."""
        try:
            descriptor = PackageDescriptor(
                config=config,
                manifest=ManifestGenerator(config).render(),
                outputs=outputs,
                res_dir=config.res,
                assets_dir=config.assets,
            )
            apk_path = self.assembler.package(descriptor)
            if not self.options.nosign:
                apk_path = self.signer.sign(apk_path, artifact=config.artifact_name)
            return CliResult.success(self.assembler.publish(config, apk_path))
        except ApkError as e:
            self.assembler.discard(config)
            return CliResult.failure(_attach(e, config.artifact_name))
        except OSError as e:
            self.assembler.discard(config)
            return CliResult.failure(AssemblyError(str(e), artifact=config.artifact_name))

    def run(self, configs: List[ResolvedConfig]) -> BuildReport:
        start_time = time.time()
        num_jobs = self.options.num_jobs
        reports: Dict[tuple, ArtifactReport] = {}

        print("=" * 60)
        print(f"Building {len(configs)} package(s) with {num_jobs} worker(s) "
              f"({'release' if self.options.release else 'debug'})")
        if self.sdk.ndk_revision:
            print(f"NDK {self.sdk.ndk_revision} at {self.sdk.ndk_path}")
        print("=" * 60)

        # manifest problems fail before any process is started
        barriers: Dict[tuple, ArchitectureBarrier] = {}
        for config in configs:
            # a package left by an earlier run must not outlive a failure in this one
            self.assembler.discard(config)
            try:
                ManifestGenerator(config).validate()
            except ApkError as e:
                reports[_key(config)] = ArtifactReport(config, CliResult.failure(e))
                print(f"❌ {config.artifact_name}: {e.describe()}")
                continue
            barriers[_key(config)] = ArchitectureBarrier(config.artifact_name, config.build_targets)

        by_key = {_key(config): config for config in configs}
        package_futures = {}
        if barriers:
            package_workers = max(1, min(num_jobs, len(barriers)))
            with ThreadPoolExecutor(max_workers=num_jobs) as build_pool, \
                    ThreadPoolExecutor(max_workers=package_workers) as package_pool:
                build_futures = {}
                for key, barrier in barriers.items():
                    for arch in barrier.archs:
                        future = build_pool.submit(self.build_one, by_key[key], arch)
                        build_futures[future] = (key, arch)

                for future in as_completed(build_futures):
                    key, arch = build_futures[future]
                    barrier = barriers[key]
                    if not barrier.put(arch, future.result()):
                        continue
                    config = by_key[key]
                    failure = barrier.first_failure()
                    if failure is not None:
                        reports[key] = ArtifactReport(
                            config, CliResult.failure(failure), elapsed=time.time() - start_time
                        )
                        print(f"❌ {config.artifact_kind} '{config.artifact_name}' not packaged: {failure.describe()}")
                        continue
                    package_futures[package_pool.submit(self.package_one, config, barrier.outputs())] = key

                for future in as_completed(package_futures):
                    key = package_futures[future]
                    result = future.result()
                    reports[key] = ArtifactReport(
                        by_key[key],
                        result,
                        signed=result.is_success() and not self.options.nosign,
                        elapsed=time.time() - start_time,
                    )

        report = BuildReport(
            artifacts=[reports[_key(config)] for config in configs],
            elapsed=time.time() - start_time,
        )
        report.print_summary()
        return report
