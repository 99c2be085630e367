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

"""Build scripts turning a Rust crate into Android packages."""

__all__ = [
    "build_android",
    "build_utils",
    "deploy",
    "config_resolver",
    "errors",
    "manifest",
    "package",
    "pipeline",
    "project",
    "sdk",
    "signer",
    "toolchain",
]
