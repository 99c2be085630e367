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

# setup path
SCRIPT_PATH = os.path.split(os.path.realpath(__file__))[0]
PROJECT_ROOT_PATH = os.path.dirname(SCRIPT_PATH)
sys.path.append(SCRIPT_PATH)
sys.path.append(PROJECT_ROOT_PATH)
PACKAGE_NAME = os.path.basename(SCRIPT_PATH)

# import this project modules
try:
    from apkgo.utils.context.namespace import CliNameSpace
    from apkgo.utils.context.context import CliContext
    from apkgo.commands.build import Build
    from apkgo.build_scripts.deploy import install_apk
    from apkgo.build_scripts.errors import ApkError
except ImportError:
    from utils.context.namespace import CliNameSpace
    from utils.context.context import CliContext
    from commands.build import Build
    from build_scripts.deploy import install_apk
    from build_scripts.errors import ApkError


class Install(Build):
    def description(self) -> str:
        return """Build the Android packages and install them on the attached device.

Takes the same options as 'apkgo build'. Every APK that builds successfully
is installed with 'adb install -r'; artifacts that failed to build are skipped.

EXAMPLES:
    apkgo install
    apkgo install --release --bin demo
        """

    def cli(self, argv=None) -> CliNameSpace:
        parser = self.get_parser(prog="apkgo install")
        if argv is None:
            module_name = os.path.splitext(os.path.basename(__file__))[0]
            argv = [x for x in sys.argv[1:] if x != module_name]
        args, unknown = parser.parse_known_args(argv, namespace=CliNameSpace())
        return args

    def exec(self, context: CliContext, args: CliNameSpace):
        try:
            _, sdk, report = self.run_build(context, args)
        except ApkError as e:
            print(f"\n❌ {e.describe()}")
            sys.exit(1)

        failed = not report.success
        for artifact_report in report.artifacts:
            if artifact_report.result.is_failure():
                continue
            try:
                install_apk(sdk, artifact_report.apk_path, artifact=artifact_report.artifact)
            except ApkError as e:
                print(f"❌ {e.describe()}")
                failed = True
        sys.exit(1 if failed else 0)
