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
import importlib
import argparse

# setup path
# >>>>>>>>>>>>>>
SCRIPT_PATH = os.path.split(os.path.realpath(__file__))[0]
PROJECT_ROOT_PATH = os.path.dirname(SCRIPT_PATH)
sys.path.append(SCRIPT_PATH)
sys.path.append(PROJECT_ROOT_PATH)
PACKAGE_NAME = os.path.basename(SCRIPT_PATH)
# <<<<<<<<<<<<<<
# import this project modules
try:
    from apkgo.utils.context.namespace import CliNameSpace
    from apkgo.utils.context.context import CliContext
    from apkgo.utils.context.command import CliCommand
except ImportError:
    from utils.context.namespace import CliNameSpace
    from utils.context.context import CliContext
    from utils.context.command import CliCommand


# Root Class for Command Line Interface
class Cli(CliCommand):
    def description(self) -> str:
        return """apkgo - build Rust crates into signed Android packages

Cross-compiles every bin and example of a crate for each configured Android
architecture, generates the AndroidManifest.xml and assembles, aligns and
signs one APK per artifact.

USAGE:
    apkgo <command> [options]

COMMANDS:
    build       Build APKs for every (or the selected) bin/example
    install     Build and install the APKs on the attached device
    run         Build, install and start one artifact
    logcat      Show the device log
    help        Show detailed help information

EXAMPLES:
    apkgo build                       # Debug build of every artifact
    apkgo build --release -j 4        # Release build with 4 parallel jobs
    apkgo run --example triangle      # Build, install and start an example
    apkgo help                        # Show detailed help

For more information on a specific command:
    apkgo <command> --help
        """

    def get_command_list(self) -> list:
        commands_dir = os.path.join(SCRIPT_PATH, "commands")
        return sorted(
            os.path.splitext(name)[0]
            for name in os.listdir(commands_dir)
            if name.endswith(".py") and not name.startswith("_")
        )

    def _parser(self, add_help=True) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog="apkgo",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            description=self.description(),
            add_help=add_help,
        )
        commands = self.get_command_list()
        parser.add_argument(
            "subcommand",
            metavar=f"{commands}",
            type=str,
            # a bare `apkgo` prints the overview
            nargs=None if add_help else "?",
            choices=commands,
        )
        return parser

    def cli(self, argv=None) -> CliNameSpace:
        if argv is None:
            argv = sys.argv[1:]
        # `apkgo --help` is ours, `apkgo build --help` belongs to the subcommand
        if len(argv) == 1 and argv[0] in ("--help", "-h"):
            self._parser().print_help()
            sys.exit(0)
        args, _ = self._parser(add_help=False).parse_known_args(argv[:1], namespace=CliNameSpace())
        args.argv = argv[1:]
        return args

    def exec(self, context: CliContext, args: CliNameSpace):
        if not args.subcommand:
            print("ERROR: No command specified\n")
            self._parser().print_help()
            sys.exit(1)

        # commands/<name>.py defines class <Name>
        module = importlib.import_module(f"{PACKAGE_NAME}.commands.{args.subcommand}")
        sub_cmd = getattr(module, args.subcommand.capitalize())()
        sub_cmd.exec(context, sub_cmd.cli(args.argv))


def main():
    cmd = Cli()
    cmd.exec(CliContext(), cmd.cli())


if __name__ == "__main__":
    main()
