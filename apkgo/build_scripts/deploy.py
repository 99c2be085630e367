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

"""Device deployment through adb."""

import os

try:
    from apkgo.build_scripts.build_utils import extract_key_error_lines
    from apkgo.build_scripts.errors import DeployError
    from apkgo.build_scripts.manifest import NATIVE_ACTIVITY, manifest_package_name
    from apkgo.build_scripts.sdk import AndroidSdk
    from apkgo.utils.cmd.cmd_util import exec_command, exec_command_streaming
except ImportError:
    from build_utils import extract_key_error_lines
    from errors import DeployError
    from manifest import NATIVE_ACTIVITY, manifest_package_name
    from sdk import AndroidSdk
    from utils.cmd.cmd_util import exec_command, exec_command_streaming


def _adb(sdk: AndroidSdk, args, artifact=None):
    adb = sdk.require(sdk.adb)
    code, output = exec_command([adb] + list(args))
    # adb < 1.0.41 exits 0 on a failed install and prints "Failure [...]"
    if code != 0 or "Failure [" in output:
        for line in extract_key_error_lines(output):
            print(f"   {line}")
        raise DeployError(f"adb {args[0]} failed with exit code {code}", artifact=artifact)
    return output


def install_apk(sdk: AndroidSdk, apk_path: str, artifact=None):
    """adb install -r <apk>"""
    print(f"📲 Installing {os.path.basename(apk_path)} to the device")
    _adb(sdk, ["install", "-r", apk_path], artifact=artifact)


def start_activity(sdk: AndroidSdk, package_name: str, artifact=None):
    """Launch the NativeActivity of an installed package."""
    component = f"{manifest_package_name(package_name)}/{NATIVE_ACTIVITY}"
    print(f"🚀 Starting {component}")
    _adb(sdk, ["shell", "am", "start", "-a", "android.intent.action.MAIN", "-n", component], artifact=artifact)


def stream_logcat(sdk: AndroidSdk, extra_args=()) -> int:
    adb = sdk.require(sdk.adb)
    print("Starting logcat")
    return exec_command_streaming([adb, "logcat"] + list(extra_args))
