#
# Copyright 2024 xcforge Project Authors. All rights reserved.
# Use of this source code is governed by a MIT-style
# license that can be found at
#
# https://opensource.org/license/MIT
#
# The above copyright notice and this permission
# notice shall be included in all copies or
# substantial portions of the Software.

"""
Exceptions raised by the framework producer.

Nothing in the producer recovers from these locally; they carry enough context
(target, platform, diagnostic text) for the caller to report which step failed.
"""

from typing import Optional, Sequence


class XCForgeError(Exception):
    """Base exception for all xcforge errors"""
    pass


class ConfigError(XCForgeError):
    """Raised when XCFORGE.toml is missing or invalid"""
    pass


class ToolNotFound(XCForgeError):
    """Raised when the developer directory or xcbuild cannot be resolved"""
    pass


class ProcessFailure(XCForgeError):
    """Raised when an external process exits with a non-zero status"""

    def __init__(
        self,
        exit_code: int,
        stderr: str = "",
        output: str = "",
        arguments: Sequence[str] = (),
        message: Optional[str] = None,
    ):
        self.exit_code = exit_code
        self.stderr = stderr
        self.output = output
        self.arguments = list(arguments)
        self.message = message or stderr.strip() or output.strip()
        command = arguments[0] if arguments else "process"
        super().__init__(
            f"{command} exited with code {exit_code}: {self.message}"
            if self.message
            else f"{command} exited with code {exit_code}"
        )


class ProcessCancelled(ProcessFailure):
    """Raised when a running process was killed because the run was cancelled"""

    def __init__(self, arguments: Sequence[str] = ()):
        super().__init__(-9, message="cancelled", arguments=arguments)


class BuildFailure(XCForgeError):
    """Raised when xcbuild fails to build a target for one platform"""

    def __init__(self, target_name: str, platform, message: str, exit_code: int = 1):
        self.target_name = target_name
        self.platform = platform
        self.message = message
        self.exit_code = exit_code
        super().__init__(
            f"Failed to build {target_name} for {platform.setting_value}:\n{message}"
        )


class DiscoveryFailure(XCForgeError):
    """Raised when a reported-successful build left no binary behind"""
    pass


class ModuleMapGenerationError(XCForgeError):
    """Raised when no framework module map can be derived for a target"""
    pass


class AssemblyError(XCForgeError):
    """Raised when a framework bundle cannot be laid out"""
    pass


class MergeError(XCForgeError):
    """Raised when createXCFramework fails"""

    def __init__(self, target_name: str, failure: ProcessFailure):
        self.target_name = target_name
        self.failure = failure
        super().__init__(
            f"Failed to create XCFramework for {target_name}: {failure.message}"
        )


class DestinationExists(XCForgeError):
    """Raised when the output already exists and overwrite is disabled"""

    def __init__(self, path):
        self.path = path
        super().__init__(
            f"{path} already exists. Pass --overwrite to replace it."
        )
