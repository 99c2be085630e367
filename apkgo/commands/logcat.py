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

import os
import sys
import argparse

# setup path
# >>>>>>>>>>>>>>
SCRIPT_PATH = os.path.split(os.path.realpath(__file__))[0]
PROJECT_ROOT_PATH = os.path.dirname(SCRIPT_PATH)
sys.path.append(SCRIPT_PATH)
sys.path.append(PROJECT_ROOT_PATH)
PACKAGE_NAME = os.path.basename(SCRIPT_PATH)
# <<<<<<<<<<<<<
# import this project modules
try:
    from apkgo.utils.context.namespace import CliNameSpace
    from apkgo.utils.context.context import CliContext
    from apkgo.utils.context.command import CliCommand
    from apkgo.build_scripts.deploy import stream_logcat
    from apkgo.build_scripts.errors import ApkError
    from apkgo.build_scripts.sdk import SDK_ENV_VARS, AndroidSdk
except ImportError:
    from utils.context.namespace import CliNameSpace
    from utils.context.context import CliContext
    from utils.context.command import CliCommand
    from build_scripts.deploy import stream_logcat
    from build_scripts.errors import ApkError
    from build_scripts.sdk import SDK_ENV_VARS, AndroidSdk


class Logcat(CliCommand):
    def description(self) -> str:
        return """Stream the device log (adb logcat).

Arguments after '--' are passed to adb logcat unchanged.

EXAMPLES:
    apkgo logcat
    apkgo logcat -- -s RustStdoutStderr
        """

    def cli(self, argv=None) -> CliNameSpace:
        parser = argparse.ArgumentParser(
            prog="apkgo logcat",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            description=self.description(),
        )
        parser.add_argument(
            "--sdk",
            type=str,
            default=None,
            help="Android SDK root (default: $ANDROID_HOME or $ANDROID_SDK_ROOT)",
        )
        parser.add_argument(
            "logcat_args",
            nargs=argparse.REMAINDER,
            help="extra arguments for adb logcat",
        )
        if argv is None:
            module_name = os.path.splitext(os.path.basename(__file__))[0]
            argv = [x for x in sys.argv[1:] if x != module_name]
        args, unknown = parser.parse_known_args(argv, namespace=CliNameSpace())
        return args

    def exec(self, context: CliContext, args: CliNameSpace):
        extra = [x for x in args.logcat_args if x != "--"]
        sdk_path = args.sdk or next((os.environ[k] for k in SDK_ENV_VARS if os.environ.get(k)), None)
        if not sdk_path:
            print("❌ Android SDK not found, set ANDROID_HOME (or ANDROID_SDK_ROOT) or pass --sdk")
            sys.exit(1)
        # only adb is needed, no NDK or build-tools lookup
        sdk = AndroidSdk(sdk_path=sdk_path, ndk_path="", build_tools_version="")
        try:
            code = stream_logcat(sdk, extra)
        except ApkError as e:
            print(f"❌ {e.describe()}")
            sys.exit(1)
        except KeyboardInterrupt:
            code = 0
        sys.exit(code)
