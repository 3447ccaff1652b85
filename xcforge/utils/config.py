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
XCFORGE.toml configuration handler.

Example:

    [project]
    name = "MyKit"

    [build]
    configuration = "release"
    platforms = ["ios", "ios_simulator"]
    library_evolution = true
    debug_symbols = false

    [paths]
    project = "build/MyKit.pif"
    derived_data = "build/DerivedData"

    [[targets]]
    name = "MyKit"
    kind = "native"
    include_dir = "Sources/MyKit/include"
    headers = ["Sources/MyKit/include/MyKit.h"]
    umbrella_header = "Sources/MyKit/include/MyKit.h"
"""

import os
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

if sys.version_info >= (3, 11, 0, "alpha", 7):
    import tomllib
else:
    import tomli as tomllib

from xcforge.producer.errors import ConfigError
from xcforge.producer.models import (
    BINARY_KIND,
    INTERFACE_KIND,
    NATIVE_KIND,
    BuildConfiguration,
    BuildOptions,
    BuildTarget,
    CustomModuleMap,
    InterfaceOnlyTarget,
    NativeTarget,
    PackageLayout,
    Platform,
    PrebuiltBinaryTarget,
    UmbrellaDirectory,
    UmbrellaHeader,
)

CONFIG_FILE_NAME = "XCFORGE.toml"
DEFAULT_PLATFORMS = ["ios", "ios_simulator"]
TARGET_KINDS = (INTERFACE_KIND, NATIVE_KIND, BINARY_KIND)


@dataclass
class ForgeConfig:
    """Everything one `xcforge` run needs, resolved against the project dir."""

    project_name: str
    project_dir: Path
    layout: PackageLayout
    options: BuildOptions
    targets: List[BuildTarget] = field(default_factory=list)
    jobs: Optional[int] = None
    overwrite: bool = False
    cache_enabled: bool = True

    @property
    def source_targets(self) -> List[BuildTarget]:
        return [t for t in self.targets if t.kind != BINARY_KIND]

    @property
    def binary_targets(self) -> List[PrebuiltBinaryTarget]:
        return [t for t in self.targets if t.kind == BINARY_KIND]


def expand_env(value: Any) -> Any:
    """
    Expand environment variables in configuration values.

    Supports ${VAR_NAME} and $VAR_NAME syntax; unknown variables are kept.
    """
    if not isinstance(value, str):
        return value

    pattern1 = re.compile(r'\$\{([^}]+)\}')
    value = pattern1.sub(lambda m: os.environ.get(m.group(1), m.group(0)), value)

    pattern2 = re.compile(r'\$([A-Za-z_][A-Za-z0-9_]*)')
    value = pattern2.sub(lambda m: os.environ.get(m.group(1), m.group(0)), value)

    return value


def load_toml(config_file: Path) -> Dict[str, Any]:
    try:
        with open(config_file, "rb") as f:
            return tomllib.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"{CONFIG_FILE_NAME} not found at {config_file}") from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Failed to parse {config_file}: {e}") from e


def load_forge_config(project_dir: str = ".", config_file: Optional[str] = None) -> ForgeConfig:
    project_dir = Path(project_dir).resolve()
    config_path = Path(config_file) if config_file else project_dir / CONFIG_FILE_NAME
    return parse_forge_config(load_toml(config_path), project_dir)


def parse_forge_config(data: Dict[str, Any], project_dir: Path) -> ForgeConfig:
    project_dir = Path(project_dir)
    project_config = data.get("project", {})
    build_config = data.get("build", {})
    paths_config = data.get("paths", {})

    project_name = expand_env(project_config.get("name", project_dir.name))

    def resolve(value, default) -> Path:
        path = Path(expand_env(value if value is not None else default))
        return path if path.is_absolute() else project_dir / path

    layout = PackageLayout(
        project_path=resolve(paths_config.get("project"), f"{project_name}.pif"),
        derived_data_path=resolve(paths_config.get("derived_data"), ".xcforge/DerivedData"),
        generated_frameworks_dir=resolve(paths_config.get("frameworks"), ".xcforge/Frameworks"),
        output_dir=resolve(paths_config.get("output"), "XCFrameworks"),
    )

    platforms_config = build_config.get("platforms", DEFAULT_PLATFORMS)
    if isinstance(platforms_config, str):
        platforms_config = [p for p in platforms_config.split(",") if p.strip()]
    try:
        platforms = tuple(dict.fromkeys(Platform.parse(expand_env(p)) for p in platforms_config))
        configuration = BuildConfiguration.parse(
            expand_env(build_config.get("configuration", "release"))
        )
    except ValueError as e:
        raise ConfigError(str(e)) from e
    if not platforms:
        raise ConfigError("[build] platforms must not be empty")

    settings = build_config.get("settings", {})
    if not isinstance(settings, dict):
        raise ConfigError("[build] settings must be a table")

    options = BuildOptions(
        build_configuration=configuration,
        enable_library_evolution=bool(build_config.get("library_evolution", True)),
        include_debug_symbols=bool(build_config.get("debug_symbols", False)),
        platforms=platforms,
        extra_build_settings={k: str(expand_env(v)) for k, v in settings.items()},
    )

    targets = [parse_target(t, resolve) for t in data.get("targets", [])]
    names = [t.name for t in targets]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ConfigError(f"Duplicate targets: {', '.join(duplicates)}")

    jobs = build_config.get("jobs")
    if jobs is not None and (not isinstance(jobs, int) or jobs < 1):
        raise ConfigError("[build] jobs must be a positive integer")

    return ForgeConfig(
        project_name=project_name,
        project_dir=project_dir,
        layout=layout,
        options=options,
        targets=targets,
        jobs=jobs,
        overwrite=bool(build_config.get("overwrite", False)),
        cache_enabled=bool(build_config.get("cache", True)),
    )


def parse_target(entry: Dict[str, Any], resolve) -> BuildTarget:
    if not isinstance(entry, dict) or not entry.get("name"):
        raise ConfigError(f"Every [[targets]] entry needs a name: {entry}")
    name = expand_env(entry["name"])
    kind = entry.get("kind", INTERFACE_KIND)
    if kind not in TARGET_KINDS:
        raise ConfigError(f"Unknown kind '{kind}' for target {name}, expected one of {TARGET_KINDS}")

    if kind == INTERFACE_KIND:
        return InterfaceOnlyTarget(name=name)

    if kind == BINARY_KIND:
        if not entry.get("artifact"):
            raise ConfigError(f"Binary target {name} needs an 'artifact' path")
        return PrebuiltBinaryTarget(name=name, artifact_path=resolve(entry["artifact"], None))

    include_dir = resolve(entry.get("include_dir"), "include")
    headers = tuple(resolve(h, None) for h in entry.get("headers", []))
    module_map_type = None
    if entry.get("module_map"):
        module_map_type = CustomModuleMap(resolve(entry["module_map"], None))
    elif entry.get("umbrella_header"):
        module_map_type = UmbrellaHeader(resolve(entry["umbrella_header"], None))
    elif entry.get("umbrella_directory"):
        module_map_type = UmbrellaDirectory(resolve(entry["umbrella_directory"], None))
    return NativeTarget(
        name=name,
        include_dir=include_dir,
        headers=headers,
        module_map_type=module_map_type,
    )
