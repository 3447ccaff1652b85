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
Module map generation for framework bundles.

xcbuild writes module maps that point into its own intermediate build tree.
Once a framework is moved to its final location those paths no longer resolve,
so a framework-shaped module map is generated here instead. Every header it
references is relative to the bundle's own ``Headers`` directory.
"""

import re
from pathlib import Path
from typing import Optional

from xcforge.producer.errors import ModuleMapGenerationError
from xcforge.producer.models import (
    BuildConfiguration,
    BuildTarget,
    CustomModuleMap,
    INTERFACE_KIND,
    NATIVE_KIND,
    NativeTarget,
    PackageLayout,
    Platform,
    UmbrellaDirectory,
    UmbrellaHeader,
)
from xcforge.utils.fs import FileSystem

HEADER_EXTENSIONS = (".h", ".hh", ".hpp", ".hxx")
MODULE_DECLARATION = re.compile(r"^(\s*)(explicit\s+)?(framework\s+)?module\s+", re.MULTILINE)
HEADER_REFERENCE = re.compile(r'((?:umbrella\s+|private\s+|textual\s+|exclude\s+)*header\s+)"([^"]+)"')


class ModuleMapGenerator:
    def __init__(self, layout: PackageLayout, file_system: FileSystem):
        self.layout = layout
        self.file_system = file_system

    def output_path(
        self,
        target: BuildTarget,
        platform: Platform,
        configuration: BuildConfiguration,
    ) -> Path:
        return (
            Path(self.layout.derived_data_path)
            / "ModuleMapsForFramework"
            / self.layout.product_directory_name(platform, configuration)
            / target.c99_name
            / "module.modulemap"
        )

    def generate(
        self,
        target: BuildTarget,
        platform: Platform,
        configuration: BuildConfiguration,
        bridging_header_path: Optional[Path] = None,
    ) -> Path:
        contents = self.module_map_contents(target, bridging_header_path)
        path = self.output_path(target, platform, configuration)
        self.file_system.create_directory(path.parent)
        self.file_system.write_file(path, contents)
        return path

    def module_map_contents(
        self, target: BuildTarget, bridging_header_path: Optional[Path] = None
    ) -> str:
        if target.kind == INTERFACE_KIND:
            # a module without @objc API gets no bridging header
            declarations = []
            if bridging_header_path is not None:
                declarations.append(f'header "{Path(bridging_header_path).name}"')
            return self._framework_module(target.c99_name, declarations)
        if target.kind == NATIVE_KIND:
            return self._native_module_map(target)
        raise ModuleMapGenerationError(
            f"{target.name} is a pre-built binary, no module map can be generated"
        )

    def _native_module_map(self, target: NativeTarget) -> str:
        module_map_type = target.module_map_type
        if isinstance(module_map_type, UmbrellaHeader):
            return self._framework_module(
                target.c99_name,
                [f'umbrella header "{Path(module_map_type.path).name}"'],
            )
        if isinstance(module_map_type, CustomModuleMap):
            return self._rewrite_custom_module_map(target, Path(module_map_type.path))

        if isinstance(module_map_type, UmbrellaDirectory):
            headers = self._headers_in_directory(Path(module_map_type.path))
        else:
            headers = sorted(h.name for h in target.public_headers())
        if not headers:
            raise ModuleMapGenerationError(
                f"{target.name} has no public headers under {target.include_dir}"
            )
        return self._framework_module(
            target.c99_name, [f'header "{name}"' for name in headers]
        )

    def _headers_in_directory(self, directory: Path):
        if not self.file_system.is_directory(directory):
            return []
        names = set()
        pending = [directory]
        while pending:
            current = pending.pop()
            for entry in self.file_system.list_directory(current):
                path = current / entry
                if self.file_system.is_directory(path):
                    pending.append(path)
                elif entry.endswith(HEADER_EXTENSIONS):
                    names.add(entry)
        return sorted(names)

    def _rewrite_custom_module_map(self, target: NativeTarget, path: Path) -> str:
        if not self.file_system.exists(path):
            raise ModuleMapGenerationError(f"Custom module map not found: {path}")
        try:
            contents = self.file_system.read_text(path)
        except UnicodeDecodeError as e:
            raise ModuleMapGenerationError(f"{path} is not valid UTF-8") from e
        if not MODULE_DECLARATION.search(contents):
            raise ModuleMapGenerationError(f"No module declaration in {path}")
        contents = MODULE_DECLARATION.sub(
            lambda m: f"{m.group(1)}{m.group(2) or ''}framework module ", contents, count=1
        )
        # headers are flattened into the bundle's Headers directory
        contents = HEADER_REFERENCE.sub(
            lambda m: f'{m.group(1)}"{Path(m.group(2)).name}"', contents
        )
        return contents if contents.endswith("\n") else contents + "\n"

    @staticmethod
    def _framework_module(name: str, declarations) -> str:
        lines = [f"framework module {name} {{"]
        lines.extend(f"    {declaration}" for declaration in declarations)
        lines.append("    export *")
        lines.append("}")
        return "\n".join(lines) + "\n"
