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
Crate discovery.

Reads Cargo.toml and finds the buildable artifacts (binaries and examples)
the same way Cargo's target auto-discovery does.
"""

import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

try:
    import tomllib
except ModuleNotFoundError:
    import tomli as tomllib

try:
    from apkgo.build_scripts.errors import ConfigError
except ImportError:
    from errors import ConfigError

ARTIFACT_KIND_BIN = "bin"
ARTIFACT_KIND_EXAMPLE = "example"
ARTIFACT_KINDS = (ARTIFACT_KIND_BIN, ARTIFACT_KIND_EXAMPLE)


@dataclass(frozen=True)
class Artifact:
    """A buildable unit that produces one package."""
    name: str
    kind: str  # "bin" or "example"
    primary: bool = False

    @property
    def label(self) -> str:
        return f"{self.kind} '{self.name}'"


@dataclass
class CrateProject:
    """The crate being packaged."""
    root_dir: str
    manifest_path: str
    package_name: str
    version: str
    target_dir: str
    artifacts: List[Artifact] = field(default_factory=list)
    android_metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def primary_artifact(self) -> Optional[Artifact]:
        for artifact in self.artifacts:
            if artifact.primary:
                return artifact
        return None

    def find_artifact(self, name: str, kind: Optional[str] = None) -> Optional[Artifact]:
        for artifact in self.artifacts:
            if artifact.name == name and (kind is None or artifact.kind == kind):
                return artifact
        return None

    def android_artifacts_dir(self, release: bool) -> str:
        """Root directory of every apkgo output for the debug/release profile."""
        return os.path.join(
            self.target_dir, "android-artifacts", "release" if release else "debug"
        )


def read_toml(path: str) -> Dict[str, Any]:
    # Must open in rb mode for tomllib
    try:
        with open(path, "rb") as f:
            return tomllib.load(f)
    except OSError as e:
        raise ConfigError(f"unable to read {path}: {e}")
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"{path} is not valid TOML: {e}")


def _discover_targets(root_dir: str, sub_dir: str) -> List[str]:
    """Auto-discovered targets: <sub_dir>/*.rs and <sub_dir>/<name>/main.rs"""
    base = os.path.join(root_dir, sub_dir)
    if not os.path.isdir(base):
        return []
    names = []
    for entry in sorted(os.listdir(base)):
        path = os.path.join(base, entry)
        if os.path.isfile(path) and entry.endswith(".rs"):
            names.append(entry[:-3])
        elif os.path.isfile(os.path.join(path, "main.rs")):
            names.append(entry)
    return names


def _declared_targets(toml_data: Dict[str, Any], key: str) -> List[str]:
    entries = toml_data.get(key, [])
    if not isinstance(entries, list):
        raise ConfigError(f"[[{key}]] must be an array of tables")
    names = []
    for entry in entries:
        name = entry.get("name") if isinstance(entry, dict) else None
        if not name or not isinstance(name, str):
            raise ConfigError(f"every [[{key}]] entry in Cargo.toml needs a name")
        names.append(name)
    return names


def discover_artifacts(root_dir: str, toml_data: Dict[str, Any], package_name: str) -> List[Artifact]:
    package = toml_data.get("package", {})
    autobins = package.get("autobins", True)
    autoexamples = package.get("autoexamples", True)

    bins = _declared_targets(toml_data, "bin")
    if autobins:
        if os.path.isfile(os.path.join(root_dir, "src", "main.rs")):
            bins.append(package_name)
        bins.extend(_discover_targets(root_dir, os.path.join("src", "bin")))

    examples = _declared_targets(toml_data, "example")
    if autoexamples:
        examples.extend(_discover_targets(root_dir, "examples"))

    # de-duplicate, keeping declaration order
    bins = list(dict.fromkeys(bins))
    examples = list(dict.fromkeys(examples))

    if package_name in bins:
        primary_name = package_name
    elif bins:
        primary_name = bins[0]
    else:
        primary_name = None

    artifacts = [Artifact(name, ARTIFACT_KIND_BIN, name == primary_name) for name in bins]
    artifacts.extend(Artifact(name, ARTIFACT_KIND_EXAMPLE) for name in examples)
    return artifacts


def load_crate(manifest_path: str, target_dir: Optional[str] = None) -> CrateProject:
    """
    Load a crate description from its Cargo.toml.

    Args:
        manifest_path: Path to Cargo.toml
        target_dir: Cargo target directory override (default: $CARGO_TARGET_DIR or <crate>/target)

    Raises:
        ConfigError: If the manifest is unreadable or has no package name
    """
    manifest_path = os.path.abspath(manifest_path)
    if not os.path.isfile(manifest_path):
        raise ConfigError(f"Cargo.toml not found at {manifest_path}")
    root_dir = os.path.dirname(manifest_path)
    toml_data = read_toml(manifest_path)

    package = toml_data.get("package")
    if not isinstance(package, dict):
        raise ConfigError(f"{manifest_path} has no [package] section")
    package_name = package.get("name")
    if not package_name or not isinstance(package_name, str):
        raise ConfigError(f"{manifest_path} has no package name")
    version = package.get("version", "0.0.0")
    if not isinstance(version, str):
        # workspace-inherited versions (version.workspace = true) are not resolved
        version = "0.0.0"

    if not target_dir:
        target_dir = os.environ.get("CARGO_TARGET_DIR") or os.path.join(root_dir, "target")
    if not os.path.isabs(target_dir):
        target_dir = os.path.join(root_dir, target_dir)

    metadata = package.get("metadata", {}) or {}
    android_metadata = metadata.get("android", {}) or {}
    if not isinstance(android_metadata, dict):
        raise ConfigError("[package.metadata.android] must be a table")

    return CrateProject(
        root_dir=root_dir,
        manifest_path=manifest_path,
        package_name=package_name,
        version=version,
        target_dir=target_dir,
        artifacts=discover_artifacts(root_dir, toml_data, package_name),
        android_metadata=android_metadata,
    )
