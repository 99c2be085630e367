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
AndroidManifest.xml generation.

The output is a pure function of the ResolvedConfig: same config, same bytes.
Features and permissions keep their declaration order.
"""

import os
import re
from typing import Dict, List
from xml.sax.saxutils import quoteattr

try:
    from apkgo.build_scripts.config_resolver import ResolvedConfig
    from apkgo.build_scripts.errors import ManifestValidationError
except ImportError:
    from config_resolver import ResolvedConfig
    from errors import ManifestValidationError

ANDROID_NAMESPACE = "http://schemas.android.com/apk/res/android"
NATIVE_ACTIVITY = "android.app.NativeActivity"
FULLSCREEN_THEME = "@android:style/Theme.DeviceDefault.NoActionBar.Fullscreen"
CONFIG_CHANGES = "orientation|keyboardHidden|screenSize"

PACKAGE_SEGMENT_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]*$")
XML_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_.\-]*(:[A-Za-z_][A-Za-z0-9_.\-]*)?$")


def manifest_package_name(package_name: str) -> str:
    return package_name.replace("-", "_")


def validate_package_name(package_name: str, artifact: str = None) -> str:
    """
    Check that a package identifier is a reverse-domain name like "com.example.app".

    Returns:
        str: the identifier with '-' replaced by '_'

    Raises:
        ManifestValidationError: If it has fewer than two segments or a segment
            does not start with a letter
    """
    name = manifest_package_name(package_name or "")
    segments = name.split(".")
    if len(segments) < 2 or not all(PACKAGE_SEGMENT_RE.match(s) for s in segments):
        raise ManifestValidationError(
            f"'{package_name}' is not a valid package name (expected a reverse-domain name like com.example.app)",
            artifact=artifact,
        )
    return name


def gl_es_version(major: int, minor: int) -> str:
    """Packed OpenGL ES version: major in the high 16 bits, minor in the low 16."""
    return "0x%04x%04x" % (major, minor)


def _format_attributes(attributes: Dict[str, str], indent: str) -> str:
    return "".join(f"\n{indent}{key}={quoteattr(str(value))}" for key, value in attributes.items())


class ManifestGenerator:
    def __init__(self, config: ResolvedConfig):
        self.config = config

    def validate(self):
        """
        Fail fast before any build is started.

        Raises:
            ManifestValidationError: On a bad package name or an attribute key that is not an XML name
        """
        config = self.config
        validate_package_name(config.package_name, artifact=config.artifact_name)
        for table_name in ("application_attributes", "activity_attributes"):
            for key in getattr(config, table_name):
                if not XML_NAME_RE.match(key):
                    raise ManifestValidationError(
                        f"{table_name} key '{key}' is not a valid XML attribute name",
                        artifact=config.artifact_name,
                    )

    def application_attributes(self) -> Dict[str, str]:
        config = self.config
        attributes = {
            "android:hasCode": "false",
            "android:label": config.label,
        }
        if config.icon:
            attributes["android:icon"] = config.icon
        if config.fullscreen:
            attributes["android:theme"] = FULLSCREEN_THEME
        # user attributes override the generated ones
        attributes.update(config.application_attributes)
        return attributes

    def activity_attributes(self) -> Dict[str, str]:
        config = self.config
        attributes = {
            "android:name": NATIVE_ACTIVITY,
            "android:label": config.label,
            "android:configChanges": CONFIG_CHANGES,
            "android:exported": "true",
        }
        attributes.update(config.activity_attributes)
        return attributes

    def render(self) -> str:
        """Render the manifest XML."""
        self.validate()
        config = self.config
        package = manifest_package_name(config.package_name)

        lines: List[str] = [
            '<?xml version="1.0" encoding="utf-8"?>',
            f'<manifest xmlns:android="{ANDROID_NAMESPACE}"',
            f"        package={quoteattr(package)}",
            f'        android:versionCode="{config.version_code}"',
            f"        android:versionName={quoteattr(config.version_name)}>",
            f'    <uses-sdk android:minSdkVersion="{config.min_sdk_version}" '
            f'android:targetSdkVersion="{config.target_sdk_version}" />',
            f'    <uses-feature android:glEsVersion="'
            f'{gl_es_version(config.opengles_version_major, config.opengles_version_minor)}" '
            f'android:required="true" />',
        ]

        for feature in config.features:
            attrs = f"android:name={quoteattr(feature.name)} android:required=\"{str(feature.required).lower()}\""
            if feature.version is not None:
                attrs += f" android:version={quoteattr(feature.version)}"
            lines.append(f"    <uses-feature {attrs} />")

        for permission in config.permissions:
            attrs = f"android:name={quoteattr(permission.name)}"
            if permission.max_sdk_version is not None:
                attrs += f' android:maxSdkVersion="{permission.max_sdk_version}"'
            lines.append(f"    <uses-permission {attrs} />")

        lines.extend([
            f"    <application{_format_attributes(self.application_attributes(), ' ' * 12)}>",
            f"        <activity{_format_attributes(self.activity_attributes(), ' ' * 16)}>",
            f'            <meta-data android:name="android.app.lib_name" android:value={quoteattr(config.lib_name)} />',
            "            <intent-filter>",
            '                <action android:name="android.intent.action.MAIN" />',
            '                <category android:name="android.intent.category.LAUNCHER" />',
            "            </intent-filter>",
            "        </activity>",
            "    </application>",
            "</manifest>",
        ])
        return "\n".join(lines) + "\n"

    def write(self, directory: str) -> str:
        path = os.path.join(directory, "AndroidManifest.xml")
        os.makedirs(directory, exist_ok=True)
        # newline="\n" keeps the bytes identical on every host
        with open(path, "w", encoding="utf-8", newline="\n") as f:
            f.write(self.render())
        return path
