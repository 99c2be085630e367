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
    from apkgo.commands.build import Build
    from apkgo.build_scripts.deploy import install_apk, start_activity
    from apkgo.build_scripts.errors import ApkError, ConfigError
    from apkgo.build_scripts.project import load_crate
except ImportError:
    from utils.context.namespace import CliNameSpace
    from utils.context.context import CliContext
    from commands.build import Build
    from build_scripts.deploy import install_apk, start_activity
    from build_scripts.errors import ApkError, ConfigError
    from build_scripts.project import load_crate


class Run(Build):
    def description(self) -> str:
        return """Build one artifact, install it and start it on the attached device.

Takes the same options as 'apkgo build' but packages a single artifact:
the one named with --bin/--example, or the crate's primary binary.

EXAMPLES:
    apkgo run
    apkgo run --example triangle
    apkgo run --release

Follow the output with 'apkgo logcat'.
        """

    def cli(self, argv=None) -> CliNameSpace:
        parser = self.get_parser(prog="apkgo run")
        if argv is None:
            module_name = os.path.splitext(os.path.basename(__file__))[0]
            argv = [x for x in sys.argv[1:] if x != module_name]
        args, unknown = parser.parse_known_args(argv, namespace=CliNameSpace())
        return args

    def choose_artifact(self, context: CliContext, args: CliNameSpace):
        if len(args.bin) + len(args.example) > 1:
            raise ConfigError("apkgo run starts one artifact, pass a single --bin or --example")
        if args.bin or args.example:
            return
        manifest_path = args.manifest_path or os.path.join(context.cwd, "Cargo.toml")
        project = load_crate(manifest_path, args.target_dir)
        primary = project.primary_artifact
        if primary is None:
            raise ConfigError(f"{project.package_name} has no binary, pass --example NAME")
        args.bin = [primary.name]

    def exec(self, context: CliContext, args: CliNameSpace):
        try:
            self.choose_artifact(context, args)
            _, sdk, report = self.run_build(context, args)
        except ApkError as e:
            print(f"\n❌ {e.describe()}")
            sys.exit(1)
        if not report.success:
            sys.exit(1)

        artifact_report = report.artifacts[0]
        try:
            install_apk(sdk, artifact_report.apk_path, artifact=artifact_report.artifact)
            start_activity(sdk, artifact_report.config.package_name, artifact=artifact_report.artifact)
        except ApkError as e:
            print(f"❌ {e.describe()}")
            sys.exit(1)
        sys.exit(0)
