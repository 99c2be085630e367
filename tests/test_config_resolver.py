"""Tests for resolving [package.metadata.android] into per-artifact configs."""

import os

import pytest

from apkgo.build_scripts.config_resolver import (
    DEFAULT_BUILD_TARGETS,
    AndroidFeature,
    AndroidPermission,
    ArtifactOverride,
    ConfigResolver,
    RootConfig,
    default_package_name,
)
from apkgo.build_scripts.errors import ConfigError
from apkgo.build_scripts.project import load_crate


CARGO_TOML = """
[package]
name = "demo"
version = "0.2.0"
"""

ANDROID_TOML = CARGO_TOML + """
[package.metadata.android]
package_name = "com.example.demo"
label = "Demo"
build_targets = ["armv7", "aarch64"]
min_sdk_version = 21
fullscreen = true
res = "res"

[package.metadata.android.application_attributes]
"android:debuggable" = true

[[package.metadata.android.permission]]
name = "android.permission.WRITE_EXTERNAL_STORAGE"
max_sdk_version = 18

[[package.metadata.android.feature]]
name = "android.hardware.vulkan.level"
version = 1
required = false
"""


@pytest.fixture
def make_resolver(crate_factory):
    def factory(toml, bins=(), examples=()):
        project = load_crate(str(crate_factory(toml, bins=bins, examples=examples)))
        return ConfigResolver.from_project(project), project

    return factory


class TestDefaults:
    def test_no_android_table(self, make_resolver):
        resolver, project = make_resolver(CARGO_TOML)
        config = resolver.resolve(project.primary_artifact)

        assert config.package_name == "rust.demo"
        assert config.label == "demo"
        assert config.compile_sdk_version == 29
        assert config.target_sdk_version == 29
        assert config.min_sdk_version == 18
        assert config.build_targets == DEFAULT_BUILD_TARGETS
        assert config.version_code == 1
        assert config.version_name == "0.2.0"
        assert config.opengles_version_major == 2
        assert config.opengles_version_minor == 0
        assert config.fullscreen is False
        assert config.res is None
        assert config.cpp_runtime == "shared"

    def test_default_package_name_replaces_dashes(self):
        assert default_package_name("my-game") == "rust.my_game"

    def test_lib_name(self, make_resolver):
        resolver, project = make_resolver(CARGO_TOML, examples=["hello-world"])
        config = resolver.resolve(project.find_artifact("hello-world"))

        assert config.lib_name == "hello_world"
        assert config.apk_name == "hello-world"


class TestRootAndOverrides:
    def test_primary_inherits_identifier_and_label(self, make_resolver):
        resolver, project = make_resolver(ANDROID_TOML)
        config = resolver.resolve(project.primary_artifact)

        assert config.package_name == "com.example.demo"
        assert config.label == "Demo"
        assert config.build_targets == ("armv7-linux-androideabi", "aarch64-linux-android")
        assert config.min_sdk_version == 21
        assert config.fullscreen is True
        assert config.res == os.path.join(project.root_dir, "res")
        assert config.application_attributes == {"android:debuggable": "true"}
        assert config.permissions == (
            AndroidPermission("android.permission.WRITE_EXTERNAL_STORAGE", max_sdk_version=18),
        )
        assert config.features == (AndroidFeature("android.hardware.vulkan.level", "1", False),)

    def test_example_does_not_inherit_identifier_or_label(self, make_resolver):
        resolver, project = make_resolver(ANDROID_TOML, examples=["triangle"])
        config = resolver.resolve(project.find_artifact("triangle"))

        assert config.package_name == "rust.triangle"
        assert config.label == "triangle"
        # every other field is inherited
        assert config.build_targets == ("armv7-linux-androideabi", "aarch64-linux-android")
        assert config.min_sdk_version == 21
        assert config.fullscreen is True
        assert len(config.permissions) == 1

    def test_secondary_bin_does_not_inherit_identifier(self, make_resolver):
        resolver, project = make_resolver(ANDROID_TOML, bins=["tool"])
        config = resolver.resolve(project.find_artifact("tool"))

        assert config.package_name == "rust.tool"
        assert config.label == "tool"

    def test_override_wins(self, make_resolver):
        toml = ANDROID_TOML + """
[[package.metadata.android.example]]
name = "triangle"
package_name = "com.example.triangle"
label = "Triangle"
build_targets = ["x86_64"]
fullscreen = false
"""
        resolver, project = make_resolver(toml, examples=["triangle"])
        config = resolver.resolve(project.find_artifact("triangle"))

        assert config.package_name == "com.example.triangle"
        assert config.label == "Triangle"
        assert config.build_targets == ("x86_64-linux-android",)
        assert config.fullscreen is False
        assert config.min_sdk_version == 21

    def test_override_for_primary_bin(self, make_resolver):
        toml = ANDROID_TOML + """
[[package.metadata.android.bin]]
name = "demo"
label = "Demo Override"
"""
        resolver, project = make_resolver(toml)
        config = resolver.resolve(project.primary_artifact)

        assert config.label == "Demo Override"
        assert config.package_name == "com.example.demo"

    def test_resolution_is_deterministic(self, make_resolver):
        resolver, project = make_resolver(ANDROID_TOML, examples=["triangle"])

        first = resolver.resolve_all()
        second = resolver.resolve_all()

        assert first == second
        assert [c.artifact_name for c in first] == ["demo", "triangle"]


class TestErrors:
    def test_override_for_unknown_artifact(self, make_resolver):
        toml = CARGO_TOML + """
[[package.metadata.android.example]]
name = "missing"
"""
        with pytest.raises(ConfigError, match="no such example"):
            make_resolver(toml)

    def test_override_without_name(self, make_resolver):
        toml = CARGO_TOML + """
[[package.metadata.android.example]]
label = "Nameless"
"""
        with pytest.raises(ConfigError, match="needs a name"):
            make_resolver(toml)

    def test_duplicate_override(self, make_resolver):
        toml = CARGO_TOML + """
[[package.metadata.android.example]]
name = "triangle"

[[package.metadata.android.example]]
name = "triangle"
"""
        with pytest.raises(ConfigError, match="more than one"):
            make_resolver(toml, examples=["triangle"])

    def test_unknown_build_target(self, make_resolver):
        resolver, project = make_resolver(CARGO_TOML + '\n[package.metadata.android]\nbuild_targets = ["mips"]\n')
        with pytest.raises(ConfigError) as exc_info:
            resolver.resolve(project.primary_artifact)
        assert exc_info.value.artifact == "demo"

    def test_empty_build_targets(self, make_resolver):
        resolver, project = make_resolver(CARGO_TOML + "\n[package.metadata.android]\nbuild_targets = []\n")
        with pytest.raises(ConfigError, match="at least one target"):
            resolver.resolve(project.primary_artifact)

    def test_min_sdk_above_target_sdk(self, make_resolver):
        toml = CARGO_TOML + "\n[package.metadata.android]\nmin_sdk_version = 30\ntarget_sdk_version = 29\n"
        resolver, project = make_resolver(toml)
        with pytest.raises(ConfigError, match="above target_sdk_version"):
            resolver.resolve(project.primary_artifact)

    def test_negative_version_code(self, make_resolver):
        resolver, project = make_resolver(CARGO_TOML + "\n[package.metadata.android]\nversion_code = -1\n")
        with pytest.raises(ConfigError, match="negative"):
            resolver.resolve(project.primary_artifact)

    def test_wrong_type(self, make_resolver):
        with pytest.raises(ConfigError, match="min_sdk_version must be an integer"):
            make_resolver(CARGO_TOML + '\n[package.metadata.android]\nmin_sdk_version = "21"\n')

    def test_bool_is_not_an_integer(self, make_resolver):
        with pytest.raises(ConfigError, match="must be an integer"):
            make_resolver(CARGO_TOML + "\n[package.metadata.android]\nversion_code = true\n")

    def test_unknown_cpp_runtime(self, make_resolver):
        resolver, project = make_resolver(CARGO_TOML + '\n[package.metadata.android]\ncpp_runtime = "gnustl"\n')
        with pytest.raises(ConfigError, match="cpp_runtime"):
            resolver.resolve(project.primary_artifact)


class TestBuildTargets:
    def test_duplicates_are_built_once(self, make_resolver, capsys):
        toml = CARGO_TOML + '\n[package.metadata.android]\nbuild_targets = ["aarch64", "aarch64-linux-android"]\n'
        resolver, project = make_resolver(toml)
        config = resolver.resolve(project.primary_artifact)

        assert config.build_targets == ("aarch64-linux-android",)
        assert "more than once" in capsys.readouterr().out

    def test_duplicate_warning_printed_once(self, make_resolver, capsys):
        toml = CARGO_TOML + '\n[package.metadata.android]\nbuild_targets = ["aarch64", "arm64-v8a"]\n'
        resolver, project = make_resolver(toml)
        assert capsys.readouterr().out.count("more than once") == 1

        first = resolver.resolve_all()
        second = resolver.resolve(project.primary_artifact)

        assert first[0] == second
        assert capsys.readouterr().out == ""

    def test_abi_names_are_accepted(self, make_resolver):
        toml = CARGO_TOML + '\n[package.metadata.android]\nbuild_targets = ["arm64-v8a", "x86"]\n'
        resolver, project = make_resolver(toml)
        config = resolver.resolve(project.primary_artifact)

        assert config.build_targets == ("aarch64-linux-android", "i686-linux-android")


class TestLayersInMemory:
    """The resolver works on explicit layers, not only on Cargo.toml"""

    def test_explicit_layers(self, crate_factory):
        project = load_crate(str(crate_factory(CARGO_TOML, examples=["triangle"])))
        root = RootConfig(package_name="com.example.demo", version_code=7)
        overrides = [ArtifactOverride(name="triangle", kind="example", version_code=9)]
        resolver = ConfigResolver(root, overrides, project)

        primary = resolver.resolve(project.primary_artifact)
        example = resolver.resolve(project.find_artifact("triangle"))

        assert (primary.package_name, primary.version_code) == ("com.example.demo", 7)
        assert (example.package_name, example.version_code) == ("rust.triangle", 9)
