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

"""Build .framework bundles with xcbuild and merge them into .xcframeworks."""

__all__ = [
    "assembler",
    "binary_extractor",
    "build_parameters",
    "errors",
    "log_decoder",
    "models",
    "modulemap",
    "pipeline",
    "tool_locator",
    "xcbuild_client",
]
