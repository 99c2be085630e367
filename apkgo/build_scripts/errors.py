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
Error types raised by the apkgo build pipeline.

Every error carries the artifact and architecture it belongs to (when known)
so a multi-artifact build can report per-artifact outcomes.
"""

from typing import Optional


class ApkError(Exception):
    """Base class for all apkgo build errors"""

    def __init__(self, message: str, artifact: Optional[str] = None, arch: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.artifact = artifact
        self.arch = arch

    @property
    def kind(self) -> str:
        return type(self).__name__

    def describe(self) -> str:
        where = []
        if self.artifact:
            where.append(f"artifact={self.artifact}")
        if self.arch:
            where.append(f"arch={self.arch}")
        suffix = f" ({', '.join(where)})" if where else ""
        return f"{self.kind}{suffix}: {self.message}"


class ConfigError(ApkError):
    """Malformed or missing required configuration"""
    pass


class ToolchainNotFoundError(ApkError):
    """An expected SDK/NDK tool or directory is absent"""
    pass


class BuildFailure(ApkError):
    """The cross-compiler exited non-zero for one architecture"""

    def __init__(self, artifact: str, arch: str, exit_code: int, output: str = ""):
        super().__init__(
            f"native build exited with code {exit_code}", artifact=artifact, arch=arch
        )
        self.exit_code = exit_code
        self.output = output


class ArtifactNotProducedError(ApkError):
    """The compiler reported success but the shared library is missing"""
    pass


class ManifestValidationError(ApkError):
    pass


class AssemblyError(ApkError):
    pass


class SigningError(ApkError):
    pass


class DeployError(ApkError):
    """adb failed while installing or launching a package"""
    pass
