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
Single-platform framework bundle assembly.

A framework bundle is a directory containing:
- The compiled binary, named after the framework
- Headers/ with public headers and the generated Swift bridging header
- Modules/ with module.modulemap and the .swiftmodule directory
- Info.plist

macOS bundles are versioned: the content lives in Versions/A, Info.plist goes
to Versions/A/Resources, and the top level only holds symlinks through
Versions/Current. Every other platform uses the shallow layout above.
"""

from pathlib import Path
from typing import Optional

from xcforge.producer.errors import AssemblyError
from xcforge.producer.models import FrameworkComponents, Platform
from xcforge.utils.events import EventSink, NullEventSink
from xcforge.utils.fs import FileSystem

INFO_PLIST_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE plist PUBLIC "-//Apple//DTD PLIST 1.0//EN" "http://www.apple.com/DTDs/PropertyList-1.0.dtd">
<plist version="1.0">
<dict>
	<key>CFBundleDevelopmentRegion</key>
	<string>en</string>
	<key>CFBundleExecutable</key>
	<string>{name}</string>
	<key>CFBundleIdentifier</key>
	<string>{name}</string>
	<key>CFBundleInfoDictionaryVersion</key>
	<string>6.0</string>
	<key>CFBundleName</key>
	<string>{name}</string>
	<key>CFBundlePackageType</key>
	<string>FMWK</string>
	<key>CFBundleShortVersionString</key>
	<string>1.0</string>
	<key>CFBundleSignature</key>
	<string>????</string>
	<key>CFBundleVersion</key>
	<string>1</string>
	<key>NSPrincipalClass</key>
	<string></string>
</dict>
</plist>
"""

FRAMEWORK_VERSION = "A"


class FrameworkBundleAssembler:
    def __init__(
        self,
        components: FrameworkComponents,
        output_dir: Path,
        file_system: FileSystem,
        events: EventSink = None,
        platform: Optional[Platform] = None,
    ):
        self.components = components
        self.output_dir = Path(output_dir)
        self.file_system = file_system
        self.events = events or NullEventSink()
        self.versioned = platform is not None and platform.is_host

    @property
    def framework_path(self) -> Path:
        return self.output_dir / f"{self.components.name}.framework"

    @property
    def content_path(self) -> Path:
        if self.versioned:
            return self.framework_path / "Versions" / FRAMEWORK_VERSION
        return self.framework_path

    @property
    def resources_path(self) -> Path:
        if self.versioned:
            return self.content_path / "Resources"
        return self.content_path

    def assemble(self) -> Path:
        """
        Lay out the bundle at ``<output_dir>/<name>.framework``.

        An existing bundle at that path is replaced. Raises AssemblyError when
        the binary is missing or two headers would land on the same file.
        """
        if not self.file_system.exists(self.components.binary_path):
            raise AssemblyError(f"Binary not found: {self.components.binary_path}")
        headers = self._collect_headers()

        if self.file_system.exists(self.framework_path):
            self.file_system.remove_tree(self.framework_path)
        self.file_system.create_directory(self.framework_path)

        self._copy_binary()
        self._copy_headers(headers)
        self._copy_modules()
        self._write_info_plist()
        if self.versioned:
            self._link_versions(has_headers=bool(headers))
        self.events.debug(
            f"Assembled {self.framework_path}", framework=self.components.name
        )
        return self.framework_path

    def _collect_headers(self):
        headers = sorted(self.components.public_header_paths or ())
        if self.components.bridging_header_path is not None:
            headers.append(self.components.bridging_header_path)

        by_name = {}
        for header in headers:
            header = Path(header)
            existing = by_name.get(header.name)
            if existing is not None and existing != header:
                raise AssemblyError(
                    f"Header name collision in {self.components.name}: {existing} and {header}"
                )
            by_name[header.name] = header
        return [by_name[name] for name in sorted(by_name)]

    def _copy_binary(self):
        self.file_system.copy(
            self.components.binary_path,
            self.content_path / self.components.name,
        )

    def _copy_headers(self, headers):
        if not headers:
            return
        headers_dir = self.content_path / "Headers"
        self.file_system.create_directory(headers_dir)
        for header in headers:
            if not self.file_system.exists(header):
                raise AssemblyError(f"Header not found: {header}")
            self.file_system.copy(header, headers_dir / header.name)

    def _copy_modules(self):
        modules_dir = self.content_path / "Modules"
        self.file_system.create_directory(modules_dir)
        swift_module_path = self.components.swift_module_path
        if swift_module_path is not None:
            self.file_system.copy(
                swift_module_path, modules_dir / Path(swift_module_path).name
            )
        if not self.file_system.exists(self.components.module_map_path):
            raise AssemblyError(f"Module map not found: {self.components.module_map_path}")
        self.file_system.copy(
            self.components.module_map_path, modules_dir / "module.modulemap"
        )

    def _write_info_plist(self):
        destination = self.resources_path / "Info.plist"
        if self.components.info_plist_path is not None:
            self.file_system.copy(self.components.info_plist_path, destination)
        else:
            self.file_system.write_file(
                destination, INFO_PLIST_TEMPLATE.format(name=self.components.name)
            )

    def _link_versions(self, has_headers: bool):
        versions_dir = self.framework_path / "Versions"
        self.file_system.create_symlink(versions_dir / "Current", FRAMEWORK_VERSION)
        entries = [self.components.name, "Modules", "Resources"]
        if has_headers:
            entries.append("Headers")
        # relative targets keep the bundle relocatable
        for entry in sorted(entries):
            self.file_system.create_symlink(
                self.framework_path / entry, f"Versions/Current/{entry}"
            )
