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
Data model shared by the framework producer.

Targets are a tagged union (InterfaceOnlyTarget, NativeTarget,
PrebuiltBinaryTarget); header information only exists on NativeTarget.
"""

import hashlib
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, FrozenSet, Mapping, Optional, Tuple, Union


class Platform(Enum):
    """Apple SDKs a framework can be built for."""

    MACOS = "macosx"
    IOS = "iphoneos"
    IOS_SIMULATOR = "iphonesimulator"
    WATCHOS = "watchos"
    WATCHOS_SIMULATOR = "watchsimulator"
    TVOS = "appletvos"
    TVOS_SIMULATOR = "appletvsimulator"
    VISIONOS = "xros"
    VISIONOS_SIMULATOR = "xrsimulator"

    @property
    def setting_value(self) -> str:
        return self.value

    @property
    def is_host(self) -> bool:
        return self is Platform.MACOS

    @classmethod
    def parse(cls, value: str) -> "Platform":
        """Accept either the SDK name (``iphoneos``) or the enum name (``ios``)."""
        normalized = value.strip().lower().replace("-", "_")
        for platform in cls:
            if normalized in (platform.value, platform.name.lower()):
                return platform
        raise ValueError(f"Unknown platform: {value}")


class BuildConfiguration(Enum):
    DEBUG = "Debug"
    RELEASE = "Release"

    @property
    def settings_value(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str) -> "BuildConfiguration":
        normalized = value.strip().lower()
        for configuration in cls:
            if normalized == configuration.value.lower():
                return configuration
        raise ValueError(f"Unknown build configuration: {value}")


def c99_name(name: str) -> str:
    """Mangle a target name into a C99 extended identifier."""
    mangled = re.sub(r"[^0-9A-Za-z_]", "_", name)
    if mangled and mangled[0].isdigit():
        mangled = "_" + mangled
    return mangled


def stable_name_hash(name: str) -> str:
    """Upper-case hex of a 64-bit hash that is stable across runs."""
    digest = hashlib.sha256(name.encode("utf-8")).digest()
    return format(int.from_bytes(digest[:8], "big"), "X")


# Module map shapes a native target can declare


@dataclass(frozen=True)
class UmbrellaHeader:
    path: Path


@dataclass(frozen=True)
class UmbrellaDirectory:
    path: Path


@dataclass(frozen=True)
class CustomModuleMap:
    path: Path


ModuleMapType = Union[UmbrellaHeader, UmbrellaDirectory, CustomModuleMap, None]

INTERFACE_KIND = "interface"
NATIVE_KIND = "native"
BINARY_KIND = "binary"


@dataclass(frozen=True)
class InterfaceOnlyTarget:
    """A Swift module: its only public header is the generated bridging header."""

    name: str
    kind: str = field(default=INTERFACE_KIND, init=False)

    @property
    def c99_name(self) -> str:
        return c99_name(self.name)


@dataclass(frozen=True)
class NativeTarget:
    """A C-family module with declared headers under an include directory."""

    name: str
    include_dir: Path
    headers: Tuple[Path, ...] = ()
    module_map_type: ModuleMapType = None
    kind: str = field(default=NATIVE_KIND, init=False)

    @property
    def c99_name(self) -> str:
        return c99_name(self.name)

    def public_headers(self) -> FrozenSet[Path]:
        """Declared headers that live under the include directory."""
        include_dir = Path(self.include_dir)
        public = set()
        for header in self.headers:
            header = Path(header)
            if include_dir in header.parents:
                public.add(header)
        return frozenset(public)


@dataclass(frozen=True)
class PrebuiltBinaryTarget:
    """A target shipped as an already-built .xcframework."""

    name: str
    artifact_path: Path
    kind: str = field(default=BINARY_KIND, init=False)

    @property
    def c99_name(self) -> str:
        return c99_name(self.name)


BuildTarget = Union[InterfaceOnlyTarget, NativeTarget, PrebuiltBinaryTarget]


def product_target_name(target: BuildTarget) -> str:
    """Name of the synthesized product target xcbuild is asked to build."""
    return f"{target.c99_name}_{stable_name_hash(target.name)}_PackageProduct"


@dataclass(frozen=True)
class BuildOptions:
    build_configuration: BuildConfiguration = BuildConfiguration.RELEASE
    enable_library_evolution: bool = True
    include_debug_symbols: bool = False
    platforms: Tuple[Platform, ...] = (Platform.IOS, Platform.IOS_SIMULATOR)
    extra_build_settings: Mapping[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class PackageLayout:
    """Filesystem roots for one producer run and the paths derived from them."""

    project_path: Path
    derived_data_path: Path
    generated_frameworks_dir: Path
    output_dir: Path

    def product_directory_name(
        self, platform: Platform, configuration: BuildConfiguration
    ) -> str:
        if platform.is_host:
            return configuration.settings_value
        return f"{configuration.settings_value}-{platform.setting_value}"

    def products_dir(
        self, platform: Platform, configuration: BuildConfiguration
    ) -> Path:
        return (
            Path(self.derived_data_path)
            / "Products"
            / self.product_directory_name(platform, configuration)
        )

    def generated_module_map_dir(self, platform: Platform) -> Path:
        return (
            Path(self.derived_data_path)
            / "Intermediates.noindex"
            / "GeneratedModuleMaps"
            / platform.setting_value
        )

    def framework_output_dir(
        self, platform: Platform, configuration: BuildConfiguration
    ) -> Path:
        return Path(self.generated_frameworks_dir) / self.product_directory_name(
            platform, configuration
        )

    def framework_path(
        self,
        target: BuildTarget,
        platform: Platform,
        configuration: BuildConfiguration,
    ) -> Path:
        return (
            self.framework_output_dir(platform, configuration)
            / f"{target.c99_name}.framework"
        )

    def xcframework_path(self, target: BuildTarget) -> Path:
        return Path(self.output_dir) / f"{target.c99_name}.xcframework"


@dataclass(frozen=True)
class DiscoveredProduct:
    """Build products found after a successful xcbuild run."""

    binary_path: Path
    module_map_path: Optional[Path] = None
    swift_module_path: Optional[Path] = None
    bridging_header_path: Optional[Path] = None
    public_header_paths: Optional[FrozenSet[Path]] = None
    debug_symbols_path: Optional[Path] = None
    info_plist_path: Optional[Path] = None


@dataclass(frozen=True)
class FrameworkComponents:
    name: str
    binary_path: Path
    module_map_path: Path
    swift_module_path: Optional[Path] = None
    public_header_paths: Optional[FrozenSet[Path]] = None
    bridging_header_path: Optional[Path] = None
    info_plist_path: Optional[Path] = None


@dataclass(frozen=True)
class ExecutorResult:
    exit_code: int
    output: str
    stderr: str
    arguments: Tuple[str, ...] = ()

    @property
    def is_success(self) -> bool:
        return self.exit_code == 0


class BuildState(Enum):
    NOT_STARTED = "not_started"
    BUILDING = "building"
    ASSEMBLING = "assembling"
    DONE = "done"
    FAILED = "failed"


@dataclass
class TargetResult:
    """Outcome of producing one target, as reported by the pipeline."""

    target_name: str
    output_path: Optional[Path] = None
    states: Dict[Platform, BuildState] = field(default_factory=dict)
    skipped: bool = False
    error: Optional[Exception] = None

    @property
    def is_success(self) -> bool:
        return self.error is None
