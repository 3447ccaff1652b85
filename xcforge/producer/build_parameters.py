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

import json
from pathlib import Path

from xcforge.producer.models import BuildConfiguration, BuildOptions, PackageLayout, Platform
from xcforge.utils.fs import FileSystem


class BuildParametersGenerator:
    """Write the JSON file passed to ``xcbuild build --buildParametersFile``."""

    def __init__(self, layout: PackageLayout, options: BuildOptions, file_system: FileSystem):
        self.layout = layout
        self.options = options
        self.file_system = file_system

    def build_settings(self) -> dict:
        settings = {
            "BUILD_LIBRARY_FOR_DISTRIBUTION": "YES" if self.options.enable_library_evolution else "NO",
            "DEBUG_INFORMATION_FORMAT": "dwarf-with-dsym",
            "SKIP_INSTALL": "NO",
        }
        settings.update({str(k): str(v) for k, v in self.options.extra_build_settings.items()})
        return settings

    def parameters(self, platform: Platform, configuration: BuildConfiguration) -> dict:
        return {
            "action": "build",
            "configurationName": configuration.settings_value,
            "activeRunDestination": {
                "platform": platform.setting_value,
                "sdk": platform.setting_value,
                "sdkVariant": platform.setting_value,
                "disableOnlyActiveArch": True,
            },
            "overrides": {
                "synthesized": {"table": self.build_settings()},
            },
        }

    def generate(self, platform: Platform, configuration: BuildConfiguration, name: str) -> Path:
        # one file per target, written outside the build lock
        path = (
            Path(self.layout.derived_data_path)
            / "BuildParameters"
            / name
            / f"{self.layout.product_directory_name(platform, configuration)}.json"
        )
        contents = json.dumps(self.parameters(platform, configuration), indent=2, sort_keys=True)
        self.file_system.create_directory(path.parent)
        self.file_system.write_file(path, contents + "\n")
        return path
