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
import time

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
    from apkgo.build_scripts.build_utils import format_elapsed_time, print_zip_tree
    from apkgo.build_scripts.config_resolver import ConfigResolver
    from apkgo.build_scripts.errors import ApkError, ConfigError
    from apkgo.build_scripts.pipeline import BuildOptions, BuildPipeline
    from apkgo.build_scripts.project import ARTIFACT_KIND_BIN, ARTIFACT_KIND_EXAMPLE, load_crate
    from apkgo.build_scripts.sdk import locate_sdk
    from apkgo.build_scripts.signer import SigningIdentity
except ImportError:
    from utils.context.namespace import CliNameSpace
    from utils.context.context import CliContext
    from utils.context.command import CliCommand
    from build_scripts.build_utils import format_elapsed_time, print_zip_tree
    from build_scripts.config_resolver import ConfigResolver
    from build_scripts.errors import ApkError, ConfigError
    from build_scripts.pipeline import BuildOptions, BuildPipeline
    from build_scripts.project import ARTIFACT_KIND_BIN, ARTIFACT_KIND_EXAMPLE, load_crate
    from build_scripts.sdk import locate_sdk
    from build_scripts.signer import SigningIdentity


def add_build_arguments(parser: argparse.ArgumentParser):
    """Options shared by build, install and run."""
    parser.add_argument(
        "--manifest-path",
        type=str,
        default=None,
        help="path to Cargo.toml (default: ./Cargo.toml)",
    )
    parser.add_argument(
        "--target-dir",
        type=str,
        default=None,
        help="cargo target directory (default: $CARGO_TARGET_DIR or <crate>/target)",
    )
    parser.add_argument(
        "--release",
        action="store_true",
        help="build in release mode (symbols are stripped unless --nostrip)",
    )
    parser.add_argument(
        "--bin",
        action="append",
        default=[],
        metavar="NAME",
        help="build only this binary, can be repeated",
    )
    parser.add_argument(
        "--example",
        action="append",
        default=[],
        metavar="NAME",
        help="build only this example, can be repeated",
    )
    parser.add_argument(
        "--features",
        type=str,
        default=None,
        help="space or comma separated cargo features to activate",
    )
    parser.add_argument(
        "-j", "--jobs",
        type=int,
        default=None,
        help="number of parallel build jobs (default: CPU count)",
    )
    parser.add_argument(
        "--nosign",
        action="store_true",
        help="leave the aligned APK unsigned",
    )
    parser.add_argument(
        "--nostrip",
        action="store_true",
        help="keep debug symbols in release builds",
    )
    parser.add_argument(
        "--keystore",
        type=str,
        default=None,
        help="keystore used for signing (default: $APKGO_KEYSTORE or ~/.android/debug.keystore)",
    )
    parser.add_argument(
        "--keystore-password",
        type=str,
        default=None,
        help="keystore password (default: $APKGO_KEYSTORE_PASSWORD)",
    )
    parser.add_argument(
        "--key-alias",
        type=str,
        default=None,
        help="key alias inside the keystore (default: $APKGO_KEY_ALIAS)",
    )
    parser.add_argument(
        "--key-password",
        type=str,
        default=None,
        help="key password (default: $APKGO_KEY_PASSWORD)",
    )
    parser.add_argument(
        "--sdk",
        type=str,
        default=None,
        help="Android SDK root (default: $ANDROID_HOME or $ANDROID_SDK_ROOT)",
    )
    parser.add_argument(
        "--ndk",
        type=str,
        default=None,
        help="Android NDK root (default: $NDK_HOME, $ANDROID_NDK_HOME, $NDK_ROOT or <sdk>/ndk/<latest>)",
    )


def select_artifacts(project, bins, examples):
    """
    The artifacts named by --bin/--example, or every artifact when none is named.

    Raises:
        ConfigError: If a named artifact does not exist or the crate has none
    """
    if not bins and not examples:
        if not project.artifacts:
            raise ConfigError(f"{project.package_name} has no bin or example targets to package")
        return list(project.artifacts)
    selected = []
    for kind, names in ((ARTIFACT_KIND_BIN, bins), (ARTIFACT_KIND_EXAMPLE, examples)):
        for name in names:
            artifact = project.find_artifact(name, kind)
            if artifact is None:
                raise ConfigError(f"no {kind} target named '{name}' in {project.package_name}")
            if artifact not in selected:
                selected.append(artifact)
    return selected


class Build(CliCommand):
    def description(self) -> str:
        return """Build Android packages (APK) from a Rust crate.

Every selected binary and example is cross-compiled for each configured
architecture, packaged with its generated AndroidManifest.xml, aligned and
signed.

EXAMPLES:
    # Build every bin and example (debug, signed with the debug keystore)
    apkgo build

    # Release build of one binary with 4 parallel jobs
    apkgo build --release --bin demo -j 4

    # Build an example without signing it
    apkgo build --example triangle --nosign

    # Sign with a release keystore
    apkgo build --release --keystore release.jks --keystore-password '${KS_PASS}'

OUTPUT:
    target/android-artifacts/<debug|release>/apk/<name>.apk
    target/android-artifacts/<debug|release>/apk/examples/<name>.apk

CONFIGURATION:
    [package.metadata.android] in Cargo.toml (build_targets, package_name,
    label, min_sdk_version, permissions, features, ...)

REQUIREMENTS:
    ANDROID_HOME (SDK with build-tools and platforms), NDK_HOME (or an NDK
    under <sdk>/ndk), the rust targets (rustup target add aarch64-linux-android ...)
    and a JDK for keytool/apksigner.
        """

    def get_parser(self, prog="apkgo build") -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog=prog,
            formatter_class=argparse.RawDescriptionHelpFormatter,
            description=self.description(),
        )
        add_build_arguments(parser)
        return parser

    def cli(self, argv=None) -> CliNameSpace:
        parser = self.get_parser()
        if argv is None:
            module_name = os.path.splitext(os.path.basename(__file__))[0]
            argv = [x for x in sys.argv[1:] if x != module_name]
        args, unknown = parser.parse_known_args(argv, namespace=CliNameSpace())
        return args

    def run_build(self, context: CliContext, args: CliNameSpace):
        """
        Resolve, build, package and sign.

        Returns:
            tuple: (project, sdk, report)

        Raises:
            ApkError: On a fatal error before the pipeline starts (configuration, SDK, keystore)
        """
        manifest_path = args.manifest_path or os.path.join(context.cwd, "Cargo.toml")
        project = load_crate(manifest_path, args.target_dir)
        resolver = ConfigResolver.from_project(project)
        configs = resolver.resolve_all(select_artifacts(project, args.bin, args.example))

        sdk = locate_sdk(args.sdk, args.ndk, resolver.root.build_tools_version)
        identity = None
        if not args.nosign:
            identity = SigningIdentity.from_options(
                keystore=args.keystore,
                keystore_password=args.keystore_password,
                key_alias=args.key_alias,
                key_password=args.key_password,
                home_path=context.home_path,
            )

        options = BuildOptions(
            release=args.release,
            features=args.features,
            jobs=args.jobs,
            nosign=args.nosign,
            nostrip=args.nostrip,
        )
        pipeline = BuildPipeline(
            project, sdk, options, identity=identity, exclude_libs=resolver.root.exclude_libs
        )
        return project, sdk, pipeline.run(configs)

    def exec(self, context: CliContext, args: CliNameSpace):
        start_time = time.time()
        try:
            _, _, report = self.run_build(context, args)
        except ApkError as e:
            print(f"\n❌ {e.describe()}")
            sys.exit(1)

        for artifact_report in report.artifacts:
            if artifact_report.result.is_success():
                print(f"\n📦 {artifact_report.apk_path}")
                print_zip_tree(artifact_report.apk_path)

        print(f"\nTotal time: {format_elapsed_time(time.time() - start_time)}")
        sys.exit(report.exit_code)
