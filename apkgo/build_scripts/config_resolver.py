#!/usr/bin/env python3
# -- coding: utf-8 --
#
# config_resolver.py
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
Android package configuration.

Reads `[package.metadata.android]` from Cargo.toml into two explicit layers:

    RootConfig        - crate-wide defaults
    ArtifactOverride  - per bin/example entries, every field optional

and merges them field by field into one ResolvedConfig per artifact.

Example Cargo.toml:

    [package.metadata.android]
    package_name = "com.example.demo"
    label = "Demo"
    build_targets = ["armv7", "aarch64"]
    min_sdk_version = 21

    [[package.metadata.android.permission]]
    name = "android.permission.WRITE_EXTERNAL_STORAGE"
    max_sdk_version = 18

    [[package.metadata.android.example]]
    name = "triangle"
    label = "Triangle"
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

try:
    from apkgo.build_scripts.errors import ConfigError
    from apkgo.build_scripts.project import (
        ARTIFACT_KINDS,
        Artifact,
        CrateProject,
    )
    from apkgo.build_scripts.toolchain import parse_build_target
except ImportError:
    from errors import ConfigError
    from project import ARTIFACT_KINDS, Artifact, CrateProject
    from toolchain import parse_build_target


# Defaults used when neither the override nor the root sets a field
DEFAULT_COMPILE_SDK_VERSION = 29
DEFAULT_MIN_SDK_VERSION = 18
DEFAULT_BUILD_TARGETS = (
    "armv7-linux-androideabi",
    "aarch64-linux-android",
    "i686-linux-android",
)
DEFAULT_VERSION_CODE = 1
DEFAULT_OPENGLES_VERSION = (2, 0)
DEFAULT_CPP_RUNTIME = "shared"
PACKAGE_NAME_PREFIX = "rust."

CPP_RUNTIMES = ("shared", "static")


@dataclass(frozen=True)
class AndroidFeature:
    """<uses-feature>"""
    name: str
    version: Optional[str] = None
    required: bool = True


@dataclass(frozen=True)
class AndroidPermission:
    """<uses-permission>"""
    name: str
    max_sdk_version: Optional[int] = None


@dataclass
class ConfigLayer:
    """
    Every key that may appear both at the root and in an override.

    None means "not set in this layer".
    """
    package_name: Optional[str] = None
    label: Optional[str] = None
    android_version: Optional[int] = None
    target_sdk_version: Optional[int] = None
    min_sdk_version: Optional[int] = None
    build_targets: Optional[Tuple[str, ...]] = None
    version_code: Optional[int] = None
    version_name: Optional[str] = None
    res: Optional[str] = None
    icon: Optional[str] = None
    assets: Optional[str] = None
    fullscreen: Optional[bool] = None
    opengles_version_major: Optional[int] = None
    opengles_version_minor: Optional[int] = None
    application_attributes: Optional[Dict[str, str]] = None
    activity_attributes: Optional[Dict[str, str]] = None
    features: Optional[Tuple[AndroidFeature, ...]] = None
    permissions: Optional[Tuple[AndroidPermission, ...]] = None
    cpp_runtime: Optional[str] = None


@dataclass
class RootConfig(ConfigLayer):
    """Crate-wide `[package.metadata.android]` table."""
    build_tools_version: Optional[str] = None
    exclude_libs: Tuple[str, ...] = ()


@dataclass
class ArtifactOverride(ConfigLayer):
    """One `[[package.metadata.android.bin]]` or `[[...example]]` entry."""
    name: Optional[str] = None
    kind: Optional[str] = None


@dataclass(frozen=True)
class ResolvedConfig:
    """Fully resolved configuration of one artifact. No field is left unset."""
    artifact_name: str
    artifact_kind: str
    primary: bool
    package_name: str
    label: str
    compile_sdk_version: int
    target_sdk_version: int
    min_sdk_version: int
    build_targets: Tuple[str, ...]
    version_code: int
    version_name: str
    res: Optional[str]
    icon: Optional[str]
    assets: Optional[str]
    fullscreen: bool
    opengles_version_major: int
    opengles_version_minor: int
    application_attributes: Dict[str, str] = field(default_factory=dict)
    activity_attributes: Dict[str, str] = field(default_factory=dict)
    features: Tuple[AndroidFeature, ...] = ()
    permissions: Tuple[AndroidPermission, ...] = ()
    cpp_runtime: str = DEFAULT_CPP_RUNTIME

    @property
    def lib_name(self) -> str:
        """Name the activity loads: lib<lib_name>.so"""
        return self.artifact_name.replace("-", "_")

    @property
    def apk_name(self) -> str:
        return self.artifact_name


def default_package_name(artifact_name: str) -> str:
    return (PACKAGE_NAME_PREFIX + artifact_name).replace("-", "_")


# ---------------------------------------------------------------------------
# TOML parsing
# ---------------------------------------------------------------------------

def _where(context: str, key: str) -> str:
    return f"{context}.{key}" if context else key


def _check_type(value, expected, context, key):
    # bool is a subclass of int, never accept it for integer keys
    if expected is int and isinstance(value, bool):
        raise ConfigError(f"{_where(context, key)} must be an integer, got {value!r}")
    if not isinstance(value, expected):
        names = {str: "a string", int: "an integer", bool: "a boolean", dict: "a table", list: "an array"}
        raise ConfigError(f"{_where(context, key)} must be {names.get(expected, expected)}, got {value!r}")
    return value


def _attribute_value(value, context, key):
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value)
    raise ConfigError(f"{_where(context, key)} values must be strings, numbers or booleans")


def _parse_attributes(table, context, key) -> Dict[str, str]:
    _check_type(table, dict, context, key)
    return {
        str(name): _attribute_value(value, context, f"{key}.{name}")
        for name, value in table.items()
    }


def _parse_features(entries, context) -> Tuple[AndroidFeature, ...]:
    _check_type(entries, list, context, "feature")
    features = []
    for entry in entries:
        _check_type(entry, dict, context, "feature")
        name = entry.get("name")
        if not name:
            raise ConfigError(f"{_where(context, 'feature')} entries need a name")
        _check_type(name, str, context, "feature.name")
        version = entry.get("version")
        if version is not None:
            if isinstance(version, bool) or not isinstance(version, (str, int)):
                raise ConfigError(f"{_where(context, 'feature.version')} must be a string or integer")
            version = str(version)
        required = _check_type(entry.get("required", True), bool, context, "feature.required")
        features.append(AndroidFeature(name=name, version=version, required=required))
    return tuple(features)


def _parse_permissions(entries, context) -> Tuple[AndroidPermission, ...]:
    _check_type(entries, list, context, "permission")
    permissions = []
    for entry in entries:
        _check_type(entry, dict, context, "permission")
        name = entry.get("name")
        if not name:
            raise ConfigError(f"{_where(context, 'permission')} entries need a name")
        _check_type(name, str, context, "permission.name")
        max_sdk = entry.get("max_sdk_version")
        if max_sdk is not None:
            _check_type(max_sdk, int, context, "permission.max_sdk_version")
        permissions.append(AndroidPermission(name=name, max_sdk_version=max_sdk))
    return tuple(permissions)


_KEY_TYPES = {
    "package_name": str,
    "label": str,
    "android_version": int,
    "target_sdk_version": int,
    "min_sdk_version": int,
    "version_code": int,
    "version_name": str,
    "res": str,
    "icon": str,
    "assets": str,
    "fullscreen": bool,
    "opengles_version_major": int,
    "opengles_version_minor": int,
    "cpp_runtime": str,
}


def _warn_duplicate_targets(targets, context):
    seen = set()
    for value in targets:
        try:
            triple = parse_build_target(value).rust_triple
        except ConfigError:
            # raised with the artifact name when the layer is resolved
            continue
        if triple in seen:
            print(f"⚠️  build target '{value}' is listed more than once in [{context}], building it once")
        seen.add(triple)


def _parse_layer(table: Dict[str, Any], layer: ConfigLayer, context: str):
    for key, expected in _KEY_TYPES.items():
        if key in table:
            setattr(layer, key, _check_type(table[key], expected, context, key))

    if "build_targets" in table:
        targets = _check_type(table["build_targets"], list, context, "build_targets")
        for target in targets:
            _check_type(target, str, context, "build_targets")
        _warn_duplicate_targets(targets, context)
        layer.build_targets = tuple(targets)

    for key in ("application_attributes", "activity_attributes"):
        if key in table:
            setattr(layer, key, _parse_attributes(table[key], context, key))

    if "feature" in table:
        layer.features = _parse_features(table["feature"], context)
    if "permission" in table:
        layer.permissions = _parse_permissions(table["permission"], context)
    return layer


def parse_root_config(table: Dict[str, Any]) -> RootConfig:
    context = "package.metadata.android"
    root = _parse_layer(table, RootConfig(), context)
    if "build_tools_version" in table:
        root.build_tools_version = _check_type(table["build_tools_version"], str, context, "build_tools_version")
    if "exclude_libs" in table:
        libs = _check_type(table["exclude_libs"], list, context, "exclude_libs")
        for lib in libs:
            _check_type(lib, str, context, "exclude_libs")
        root.exclude_libs = tuple(libs)
    return root


def parse_overrides(table: Dict[str, Any]) -> List[ArtifactOverride]:
    overrides = []
    for kind in ARTIFACT_KINDS:
        entries = table.get(kind, [])
        context = f"package.metadata.android.{kind}"
        _check_type(entries, list, "package.metadata.android", kind)
        for entry in entries:
            _check_type(entry, dict, "package.metadata.android", kind)
            override = _parse_layer(entry, ArtifactOverride(kind=kind), context)
            name = entry.get("name")
            if name is not None:
                _check_type(name, str, context, "name")
            override.name = name
            overrides.append(override)
    return overrides


def load_android_config(project: CrateProject) -> Tuple[RootConfig, List[ArtifactOverride]]:
    """Parse the crate's `[package.metadata.android]` table into both layers."""
    table = project.android_metadata or {}
    return parse_root_config(table), parse_overrides(table)


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------

def _first_set(*values):
    for value in values:
        if value is not None:
            return value
    return None


class ConfigResolver:
    """
    Merges RootConfig and ArtifactOverride records into ResolvedConfigs.

    Rule, field by field: the override wins, else the root, else the default.
    Package identifier and label are the exception: only the primary artifact
    reads them from the root; secondary artifacts use their own override or
    the computed default.

    Resolution has no side effects; resolving twice gives equal results.
    """

    def __init__(self, root: RootConfig, overrides: List[ArtifactOverride], project: CrateProject):
        self.root = root
        self.project = project
        self.overrides: Dict[Tuple[str, str], ArtifactOverride] = {}
        for override in overrides:
            if not override.name:
                raise ConfigError("every [[package.metadata.android.bin]]/[[...example]] entry needs a name")
            if override.kind not in ARTIFACT_KINDS:
                raise ConfigError(
                    f"unknown artifact kind '{override.kind}' for '{override.name}' (expected bin or example)",
                    artifact=override.name,
                )
            if project.find_artifact(override.name, override.kind) is None:
                raise ConfigError(
                    f"android config overrides {override.kind} '{override.name}', "
                    f"but the crate has no such {override.kind}",
                    artifact=override.name,
                )
            key = (override.kind, override.name)
            if key in self.overrides:
                raise ConfigError(
                    f"{override.kind} '{override.name}' has more than one android override",
                    artifact=override.name,
                )
            self.overrides[key] = override

    @classmethod
    def from_project(cls, project: CrateProject) -> "ConfigResolver":
        root, overrides = load_android_config(project)
        return cls(root, overrides, project)

    def _resolve_build_targets(self, targets, artifact_name) -> Tuple[str, ...]:
        if targets is None:
            targets = DEFAULT_BUILD_TARGETS
        resolved = []
        for value in targets:
            try:
                triple = parse_build_target(value).rust_triple
            except ConfigError as e:
                raise ConfigError(e.message, artifact=artifact_name)
            if triple not in resolved:
                resolved.append(triple)
        if not resolved:
            raise ConfigError("build_targets must name at least one target", artifact=artifact_name)
        return tuple(resolved)

    def _resolve_path(self, path: Optional[str]) -> Optional[str]:
        if path is None:
            return None
        if os.path.isabs(path):
            return path
        return os.path.normpath(os.path.join(self.project.root_dir, path))

    def resolve(self, artifact: Artifact) -> ResolvedConfig:
        """
        Resolve the configuration of one artifact.

        Raises:
            ConfigError: On a missing name, unknown kind, empty/unknown targets,
                negative version code, min-API above target-API or unknown C++ runtime
        """
        if not artifact.name:
            raise ConfigError("artifact has no name")
        if artifact.kind not in ARTIFACT_KINDS:
            raise ConfigError(f"unknown artifact kind '{artifact.kind}'", artifact=artifact.name)

        root = self.root
        override = self.overrides.get((artifact.kind, artifact.name)) or ArtifactOverride()

        def pick(key, default=None):
            return _first_set(getattr(override, key), getattr(root, key), default)

        if artifact.primary:
            package_name = _first_set(override.package_name, root.package_name, default_package_name(artifact.name))
            label = _first_set(override.label, root.label, artifact.name)
        else:
            package_name = _first_set(override.package_name, default_package_name(artifact.name))
            label = _first_set(override.label, artifact.name)

        compile_sdk = pick("android_version", DEFAULT_COMPILE_SDK_VERSION)
        target_sdk = pick("target_sdk_version", compile_sdk)
        min_sdk = pick("min_sdk_version", DEFAULT_MIN_SDK_VERSION)
        if min_sdk > target_sdk:
            raise ConfigError(
                f"min_sdk_version {min_sdk} is above target_sdk_version {target_sdk}",
                artifact=artifact.name,
            )

        version_code = pick("version_code", DEFAULT_VERSION_CODE)
        if version_code < 0:
            raise ConfigError(f"version_code must not be negative, got {version_code}", artifact=artifact.name)

        cpp_runtime = pick("cpp_runtime", DEFAULT_CPP_RUNTIME)
        if cpp_runtime not in CPP_RUNTIMES:
            raise ConfigError(
                f"cpp_runtime must be one of {', '.join(CPP_RUNTIMES)}, got '{cpp_runtime}'",
                artifact=artifact.name,
            )

        return ResolvedConfig(
            artifact_name=artifact.name,
            artifact_kind=artifact.kind,
            primary=artifact.primary,
            package_name=package_name,
            label=label,
            compile_sdk_version=compile_sdk,
            target_sdk_version=target_sdk,
            min_sdk_version=min_sdk,
            build_targets=self._resolve_build_targets(pick("build_targets"), artifact.name),
            version_code=version_code,
            version_name=pick("version_name", self.project.version),
            res=self._resolve_path(pick("res")),
            icon=pick("icon"),
            assets=self._resolve_path(pick("assets")),
            fullscreen=pick("fullscreen", False),
            opengles_version_major=pick("opengles_version_major", DEFAULT_OPENGLES_VERSION[0]),
            opengles_version_minor=pick("opengles_version_minor", DEFAULT_OPENGLES_VERSION[1]),
            application_attributes=dict(pick("application_attributes", {})),
            activity_attributes=dict(pick("activity_attributes", {})),
            features=pick("features", ()),
            permissions=pick("permissions", ()),
            cpp_runtime=cpp_runtime,
        )

    def resolve_all(self, artifacts: Optional[List[Artifact]] = None) -> List[ResolvedConfig]:
        """Resolve every artifact (default: all artifacts of the crate). Any ConfigError is fatal."""
        if artifacts is None:
            artifacts = self.project.artifacts
        return [self.resolve(artifact) for artifact in artifacts]
