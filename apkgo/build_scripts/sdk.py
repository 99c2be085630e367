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
Android SDK/NDK discovery.

SDK root: --sdk, then ANDROID_HOME, then ANDROID_SDK_ROOT.
NDK root: --ndk, then NDK_HOME, ANDROID_NDK_HOME, NDK_ROOT, then the newest
<sdk>/ndk/<version> and finally <sdk>/ndk-bundle.
"""

import os
import re
from dataclasses import dataclass
from typing import Optional

try:
    from apkgo.build_scripts.build_utils import (
        executable_suffix_bat,
        executable_suffix_exe,
    )
    from apkgo.build_scripts.errors import ToolchainNotFoundError
except ImportError:
    from build_utils import executable_suffix_bat, executable_suffix_exe
    from errors import ToolchainNotFoundError

SDK_ENV_VARS = ("ANDROID_HOME", "ANDROID_SDK_ROOT")
NDK_ENV_VARS = ("NDK_HOME", "ANDROID_NDK_HOME", "NDK_ROOT")


def _version_key(version: str):
    """Sort key for "30.0.3" / "25.2.9519653" / "34.0.0-rc1" style names."""
    parts = []
    for piece in re.split(r"[.\-]", version):
        if piece.isdigit():
            parts.append((1, int(piece), ""))
        else:
            parts.append((0, 0, piece))
    return parts


def latest_version_dir(parent: str) -> Optional[str]:
    if not os.path.isdir(parent):
        return None
    versions = [d for d in os.listdir(parent) if os.path.isdir(os.path.join(parent, d))]
    if not versions:
        return None
    return max(versions, key=_version_key)


def get_ndk_revision(ndk_path: str) -> Optional[str]:
    """
    Read Pkg.Revision from <ndk>/source.properties.

    Returns:
        str: revision such as "25.2.9519653", or None when the file is missing
    """
    properties = os.path.join(ndk_path, "source.properties")
    if not os.path.isfile(properties):
        return None
    with open(properties, "r", encoding="utf-8") as f:
        for line in f:
            key, sep, value = line.partition("=")
            if sep and key.strip() == "Pkg.Revision":
                return value.strip()
    return None


@dataclass
class AndroidSdk:
    sdk_path: str
    ndk_path: str
    build_tools_version: str
    ndk_revision: Optional[str] = None

    @property
    def build_tools_dir(self) -> str:
        return os.path.join(self.sdk_path, "build-tools", self.build_tools_version)

    @property
    def aapt(self) -> str:
        return os.path.join(self.build_tools_dir, "aapt" + executable_suffix_exe())

    @property
    def zipalign(self) -> str:
        return os.path.join(self.build_tools_dir, "zipalign" + executable_suffix_exe())

    @property
    def apksigner(self) -> str:
        return os.path.join(self.build_tools_dir, "apksigner" + executable_suffix_bat())

    @property
    def adb(self) -> str:
        return os.path.join(self.sdk_path, "platform-tools", "adb" + executable_suffix_exe())

    def android_jar(self, compile_sdk_version: int) -> str:
        """
        platforms/android-<N>/android.jar

        Raises:
            ToolchainNotFoundError: If that platform is not installed
        """
        path = os.path.join(self.sdk_path, "platforms", f"android-{compile_sdk_version}", "android.jar")
        if not os.path.isfile(path):
            raise ToolchainNotFoundError(
                f"android.jar for API {compile_sdk_version} not found at {path}, "
                f"install it with: sdkmanager \"platforms;android-{compile_sdk_version}\""
            )
        return path

    def require(self, tool_path: str) -> str:
        if not os.path.isfile(tool_path):
            raise ToolchainNotFoundError(f"Android SDK tool not found: {tool_path}")
        return tool_path


def _from_env(names) -> Optional[str]:
    for name in names:
        value = os.environ.get(name)
        if value:
            return value
    return None


def locate_sdk(sdk_path: Optional[str] = None, ndk_path: Optional[str] = None,
               build_tools_version: Optional[str] = None) -> AndroidSdk:
    """
    Find the Android SDK, NDK and build-tools to use.

    Args:
        sdk_path: explicit SDK root (overrides the environment)
        ndk_path: explicit NDK root (overrides the environment)
        build_tools_version: explicit build-tools version, default the newest installed

    Raises:
        ToolchainNotFoundError: If the SDK, NDK or build-tools cannot be found
    """
    sdk_path = sdk_path or _from_env(SDK_ENV_VARS)
    if not sdk_path:
        raise ToolchainNotFoundError(
            "Android SDK not found, set ANDROID_HOME (or ANDROID_SDK_ROOT) or pass --sdk"
        )
    if not os.path.isdir(sdk_path):
        raise ToolchainNotFoundError(f"Android SDK directory does not exist: {sdk_path}")

    ndk_path = ndk_path or _from_env(NDK_ENV_VARS)
    if not ndk_path:
        latest_ndk = latest_version_dir(os.path.join(sdk_path, "ndk"))
        if latest_ndk:
            ndk_path = os.path.join(sdk_path, "ndk", latest_ndk)
        elif os.path.isdir(os.path.join(sdk_path, "ndk-bundle")):
            ndk_path = os.path.join(sdk_path, "ndk-bundle")
    if not ndk_path:
        raise ToolchainNotFoundError(
            "Android NDK not found, set NDK_HOME (or ANDROID_NDK_HOME) or pass --ndk"
        )
    if not os.path.isdir(ndk_path):
        raise ToolchainNotFoundError(f"Android NDK directory does not exist: {ndk_path}")

    build_tools_root = os.path.join(sdk_path, "build-tools")
    if build_tools_version:
        if not os.path.isdir(os.path.join(build_tools_root, build_tools_version)):
            raise ToolchainNotFoundError(
                f"build-tools {build_tools_version} is not installed in {build_tools_root}"
            )
    else:
        build_tools_version = latest_version_dir(build_tools_root)
        if not build_tools_version:
            raise ToolchainNotFoundError(f"no build-tools installed in {build_tools_root}")

    return AndroidSdk(
        sdk_path=sdk_path,
        ndk_path=ndk_path,
        build_tools_version=build_tools_version,
        ndk_revision=get_ndk_revision(ndk_path),
    )
