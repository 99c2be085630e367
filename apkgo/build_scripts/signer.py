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
APK signing with apksigner.

By default packages are signed with the Android SDK debug keystore
(~/.android/debug.keystore), created with keytool on first use. A release
keystore can be given on the command line or through the environment:

    APKGO_KEYSTORE            path to the keystore
    APKGO_KEYSTORE_PASSWORD   store password, supports ${VAR} / $VAR
    APKGO_KEY_ALIAS           key alias (optional)
    APKGO_KEY_PASSWORD        key password (optional, supports ${VAR} / $VAR)
"""

import os
import re
import threading
from dataclasses import dataclass
from typing import Optional

try:
    from apkgo.build_scripts.build_utils import (
        executable_suffix_exe,
        extract_key_error_lines,
        script_command,
    )
    from apkgo.build_scripts.errors import SigningError, ToolchainNotFoundError
    from apkgo.build_scripts.sdk import AndroidSdk
    from apkgo.utils.cmd.cmd_util import exec_command
except ImportError:
    from build_utils import executable_suffix_exe, extract_key_error_lines, script_command
    from errors import SigningError, ToolchainNotFoundError
    from sdk import AndroidSdk
    from utils.cmd.cmd_util import exec_command

DEBUG_KEYSTORE_PASSWORD = "android"
DEBUG_KEY_ALIAS = "androiddebugkey"
DEBUG_DNAME = "CN=Android Debug,O=Android,C=US"


def _expand_env(value):
    """
    Expand environment variables in credential values.

    Supports ${VAR_NAME} and $VAR_NAME syntax; unknown variables are left as is.
    """
    if not isinstance(value, str):
        return value

    # Pattern for ${VAR_NAME}
    pattern1 = re.compile(r'\$\{([^}]+)\}')
    value = pattern1.sub(lambda m: os.environ.get(m.group(1), m.group(0)), value)

    # Pattern for $VAR_NAME
    pattern2 = re.compile(r'\$([A-Za-z_][A-Za-z0-9_]*)')
    value = pattern2.sub(lambda m: os.environ.get(m.group(1), m.group(0)), value)

    return value


def find_java_executable(name: str) -> str:
    """
    Find a JDK tool, first on PATH, then in $JAVA_HOME/bin.

    Raises:
        ToolchainNotFoundError: If the tool is in neither place
    """
    file_name = name + executable_suffix_exe()
    for path in os.environ.get("PATH", "").split(os.pathsep):
        if not path:
            continue
        candidate = os.path.join(path, file_name)
        if os.path.isfile(candidate):
            return candidate
    java_home = os.environ.get("JAVA_HOME")
    if java_home:
        candidate = os.path.join(java_home, "bin", file_name)
        if os.path.isfile(candidate):
            return candidate
    raise ToolchainNotFoundError(
        f"unable to find '{file_name}', add the JDK to PATH or set JAVA_HOME"
    )


@dataclass(frozen=True)
class SigningIdentity:
    keystore: str
    keystore_password: str
    key_alias: Optional[str] = None
    key_password: Optional[str] = None
    is_debug: bool = False

    @classmethod
    def debug(cls, home_path: Optional[str] = None) -> "SigningIdentity":
        home_path = home_path or os.path.expanduser("~")
        return cls(
            keystore=os.path.join(home_path, ".android", "debug.keystore"),
            keystore_password=DEBUG_KEYSTORE_PASSWORD,
            key_alias=DEBUG_KEY_ALIAS,
            key_password=DEBUG_KEYSTORE_PASSWORD,
            is_debug=True,
        )

    @classmethod
    def from_options(cls, keystore=None, keystore_password=None, key_alias=None, key_password=None,
                     home_path=None) -> "SigningIdentity":
        """
        Pick the identity: explicit options, then APKGO_* environment, then the debug keystore.

        Raises:
            SigningError: If a keystore is given without a password
        """
        keystore = keystore or os.environ.get("APKGO_KEYSTORE")
        if not keystore:
            return cls.debug(home_path)
        keystore_password = keystore_password or os.environ.get("APKGO_KEYSTORE_PASSWORD")
        if not keystore_password:
            raise SigningError(
                f"keystore {keystore} needs a password (--keystore-password or APKGO_KEYSTORE_PASSWORD)"
            )
        return cls(
            keystore=os.path.expanduser(keystore),
            keystore_password=_expand_env(keystore_password),
            key_alias=key_alias or os.environ.get("APKGO_KEY_ALIAS"),
            key_password=_expand_env(key_password or os.environ.get("APKGO_KEY_PASSWORD")),
        )


class Signer:
    # one keytool run even when several packages finish at once
    _keystore_lock = threading.Lock()

    def __init__(self, sdk: AndroidSdk, identity: SigningIdentity):
        self.sdk = sdk
        self.identity = identity

    def ensure_debug_keystore(self):
        """Create the debug keystore with keytool if it does not exist yet."""
        identity = self.identity
        if not identity.is_debug:
            if not os.path.isfile(identity.keystore):
                raise SigningError(f"keystore not found: {identity.keystore}")
            return
        with Signer._keystore_lock:
            if os.path.isfile(identity.keystore):
                return
            os.makedirs(os.path.dirname(identity.keystore), exist_ok=True)
            keytool = find_java_executable("keytool")
            print(f"🔑 Creating debug keystore at {identity.keystore}")
            code, output = exec_command([
                keytool,
                "-genkey", "-v",
                "-keystore", identity.keystore,
                "-storepass", identity.keystore_password,
                "-alias", identity.key_alias,
                "-keypass", identity.key_password,
                "-dname", DEBUG_DNAME,
                "-keyalg", "RSA",
                "-keysize", "2048",
                "-validity", "10000",
            ])
            if code != 0:
                raise SigningError(f"keytool exited with code {code}: {output.strip()}")

    def sign_command(self, apk_path: str):
        identity = self.identity
        cmd = script_command(self.sdk.apksigner) + [
            "sign",
            "--ks", identity.keystore,
            "--ks-pass", f"pass:{identity.keystore_password}",
        ]
        if identity.key_alias:
            cmd.extend(["--ks-key-alias", identity.key_alias])
        if identity.key_password:
            cmd.extend(["--key-pass", f"pass:{identity.key_password}"])
        cmd.append(apk_path)
        return cmd

    def sign(self, apk_path: str, artifact: Optional[str] = None) -> str:
        """
        Sign an aligned APK in place. No retry.

        Returns:
            str: the signed APK path

        Raises:
            SigningError: If apksigner exits non-zero
        """
        self.sdk.require(self.sdk.apksigner)
        self.ensure_debug_keystore()
        print(f"🔑 Signing {os.path.basename(apk_path)} with {self.identity.keystore}")
        # passwords stay out of the printed command
        code, output = exec_command(self.sign_command(apk_path))
        if code != 0:
            for line in extract_key_error_lines(output):
                print(f"   {line}")
            raise SigningError(f"apksigner exited with code {code}", artifact=artifact)
        return apk_path
