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
except ImportError:
    from utils.context.namespace import CliNameSpace
    from utils.context.context import CliContext
    from utils.context.command import CliCommand


class Help(CliCommand):
    def description(self) -> str:
        return """Show detailed help information for apkgo commands.

Use 'apkgo <command> --help' for command-specific help.
        """

    def cli(self, argv=None) -> CliNameSpace:
        parser = argparse.ArgumentParser(
            prog="apkgo help",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            description=self.description(),
        )
        if argv is None:
            module_name = os.path.splitext(os.path.basename(__file__))[0]
            argv = [x for x in sys.argv[1:] if x != module_name]
        args, unknown = parser.parse_known_args(argv, namespace=CliNameSpace())
        return args

    def exec(self, context: CliContext, args: CliNameSpace):
        print("\n" + "=" * 70)
        print("apkgo - build Rust crates into signed Android packages")
        print("=" * 70)

        print("\n1. Build packages")
        print("\n  apkgo build [options]")
        print("\n  Options:")
        print("    --manifest-path <path>   Cargo.toml to build (default: ./Cargo.toml)")
        print("    --target-dir <dir>       cargo target directory")
        print("    --release                Release build, symbols stripped unless --nostrip")
        print("    --bin <name>             Only this binary (repeatable)")
        print("    --example <name>         Only this example (repeatable)")
        print("    --features <features>    cargo features to activate")
        print("    -j, --jobs <n>           Parallel build jobs (default: CPU count)")
        print("    --nosign                 Leave the APK unsigned")
        print("    --nostrip                Keep symbols in release builds")
        print("    --keystore <path>        Sign with this keystore instead of the debug one")
        print("    --keystore-password <p>  Keystore password, ${VAR} is expanded")
        print("    --key-alias <alias>      Key alias")
        print("    --key-password <p>       Key password, ${VAR} is expanded")
        print("    --sdk <path>             Android SDK root")
        print("    --ndk <path>             Android NDK root")
        print("\n  Examples:")
        print("    apkgo build")
        print("    apkgo build --release --bin demo -j 4")
        print("    apkgo build --example triangle --nosign")

        print("\n2. Install packages on the attached device")
        print("\n  apkgo install [build options]")

        print("\n3. Build, install and start one artifact")
        print("\n  apkgo run [build options]")
        print("\n  Examples:")
        print("    apkgo run")
        print("    apkgo run --example triangle")

        print("\n4. Show the device log")
        print("\n  apkgo logcat [-- <adb logcat args>]")

        print("\n" + "=" * 70)
        print("Configuration ([package.metadata.android] in Cargo.toml)")
        print("=" * 70)
        print("""
  package_name = "com.example.demo"     # default: rust.<artifact>
  label = "Demo"                        # default: artifact name
  android_version = 29                  # compile API
  target_sdk_version = 29               # default: android_version
  min_sdk_version = 18
  build_targets = ["armv7", "aarch64", "i686", "x86_64"]
  version_code = 1
  version_name = "0.1.0"                # default: crate version
  res = "res"
  icon = "@mipmap/ic_launcher"
  assets = "assets"
  fullscreen = false
  opengles_version_major = 2
  opengles_version_minor = 0
  cpp_runtime = "shared"                # or "static"
  build_tools_version = "34.0.0"        # default: newest installed
  exclude_libs = ["libfoo.so"]          # never bundled

  [package.metadata.android.application_attributes]
  "android:debuggable" = "true"

  [package.metadata.android.activity_attributes]
  "android:screenOrientation" = "landscape"

  [[package.metadata.android.feature]]
  name = "android.hardware.vulkan.level"
  version = "1"
  required = false

  [[package.metadata.android.permission]]
  name = "android.permission.WRITE_EXTERNAL_STORAGE"
  max_sdk_version = 18

  [[package.metadata.android.example]]  # or [[package.metadata.android.bin]]
  name = "triangle"
  label = "Triangle"
""")

        print("=" * 70)
        print("Environment variables")
        print("=" * 70)
        print("  ANDROID_HOME / ANDROID_SDK_ROOT       Android SDK root")
        print("  NDK_HOME / ANDROID_NDK_HOME / NDK_ROOT Android NDK root")
        print("  JAVA_HOME                             JDK (keytool) when not on PATH")
        print("  APKGO_KEYSTORE                        Signing keystore")
        print("  APKGO_KEYSTORE_PASSWORD               Keystore password")
        print("  APKGO_KEY_ALIAS                       Key alias")
        print("  APKGO_KEY_PASSWORD                    Key password")
        print("  CARGO_TARGET_DIR                      cargo target directory")
        print()
