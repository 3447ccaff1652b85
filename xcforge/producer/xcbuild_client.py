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
Drive xcbuild for one target.

build_framework() builds the target for one platform, discovers the build
products and assembles a .framework bundle from them. create_xcframework()
merges the per-platform bundles with ``xcbuild createXCFramework``.

Per-platform state moves NOT_STARTED -> BUILDING -> ASSEMBLING -> DONE, or to
FAILED from either of the two middle states. Failed builds are never retried.
"""

import contextlib
import threading
from dataclasses import replace
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from xcforge.producer.assembler import FrameworkBundleAssembler
from xcforge.producer.errors import (
    BuildFailure,
    DiscoveryFailure,
    MergeError,
    ProcessCancelled,
    ProcessFailure,
)
from xcforge.producer.log_decoder import XCBuildOutputDecoder
from xcforge.producer.models import (
    BuildOptions,
    BuildState,
    BuildTarget,
    DiscoveredProduct,
    ExecutorResult,
    FrameworkComponents,
    NATIVE_KIND,
    PackageLayout,
    Platform,
    product_target_name,
)
from xcforge.producer.modulemap import ModuleMapGenerator
from xcforge.producer.tool_locator import ToolLocator
from xcforge.utils.cmd.cmd_util import ProcessExecutor
from xcforge.utils.events import EventSink, NullEventSink
from xcforge.utils.fs import FileSystem, LocalFileSystem

SWIFT_MODULE_EXTENSION = "swiftmodule"
BRIDGING_HEADER_SUFFIX = "-Swift.h"
ALLOW_INTERNAL_DISTRIBUTION_FLAG = "-allow-internal-distribution"


class XCBuildClient:
    def __init__(
        self,
        layout: PackageLayout,
        target: BuildTarget,
        options: BuildOptions,
        file_system: Optional[FileSystem] = None,
        executor: Optional[ProcessExecutor] = None,
        tool_locator: Optional[ToolLocator] = None,
        events: Optional[EventSink] = None,
        build_lock=None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.layout = layout
        self.target = target
        self.options = options
        self.file_system = file_system or LocalFileSystem()
        self.executor = executor or ProcessExecutor(decoder=XCBuildOutputDecoder())
        self.tool_locator = tool_locator or ToolLocator(self.executor)
        self.events = events or NullEventSink()
        # held around every xcbuild invocation that shares derived_data_path
        self.build_lock = build_lock or contextlib.nullcontext()
        self.cancel_event = cancel_event
        self.states: Dict[Platform, BuildState] = {}

    @property
    def configuration(self):
        return self.options.build_configuration

    @property
    def product_target_name(self) -> str:
        return product_target_name(self.target)

    def state(self, platform: Platform) -> BuildState:
        return self.states.get(platform, BuildState.NOT_STARTED)

    def framework_path(self, platform: Platform) -> Path:
        return self.layout.framework_path(self.target, platform, self.configuration)

    def build_arguments(self, xcbuild_path: Path, build_parameters_path: Path) -> List[str]:
        return [
            str(xcbuild_path),
            "build",
            str(self.layout.project_path),
            "--configuration",
            self.configuration.settings_value,
            "--derivedDataPath",
            str(self.layout.derived_data_path),
            "--buildParametersFile",
            str(build_parameters_path),
            "--target",
            self.product_target_name,
        ]

    def build_framework(self, platform: Platform, build_parameters_path: Path) -> DiscoveredProduct:
        """Build and assemble ``<name>.framework`` for one platform."""
        self.states[platform] = BuildState.BUILDING
        self.events.info(
            f"🔨 Building {self.target.name} for {platform.setting_value}",
            target=self.target.name,
            platform=platform.setting_value,
        )
        try:
            xcbuild_path = self.tool_locator.locate_build_engine()
            arguments = self.build_arguments(xcbuild_path, build_parameters_path)
            with self.build_lock:
                self.executor.execute(*arguments, cancel_event=self.cancel_event)
        except ProcessCancelled:
            self.states[platform] = BuildState.FAILED
            raise
        except ProcessFailure as e:
            self.states[platform] = BuildState.FAILED
            # e.message comes from the executor's own decoder, which need not
            # understand the xcbuild log
            message = (
                XCBuildOutputDecoder().decode(
                    ExecutorResult(e.exit_code, e.output, e.stderr, tuple(e.arguments))
                )
                or e.stderr.strip()
                or e.message
            )
            raise BuildFailure(self.target.name, platform, message, e.exit_code) from e
        except Exception:
            self.states[platform] = BuildState.FAILED
            raise

        self.states[platform] = BuildState.ASSEMBLING
        try:
            product = self.assemble_framework(platform)
        except Exception:
            self.states[platform] = BuildState.FAILED
            raise
        self.states[platform] = BuildState.DONE
        return product

    def assemble_framework(self, platform: Platform) -> DiscoveredProduct:
        product = self.discover_products(platform)
        # xcbuild's own module maps point into its intermediates, so a
        # framework module map is generated instead of copied
        module_map_path = ModuleMapGenerator(self.layout, self.file_system).generate(
            self.target, platform, self.configuration, product.bridging_header_path
        )
        product = replace(product, module_map_path=module_map_path)
        components = FrameworkComponents(
            name=self.target.c99_name,
            binary_path=product.binary_path,
            module_map_path=module_map_path,
            swift_module_path=product.swift_module_path,
            public_header_paths=product.public_header_paths,
            bridging_header_path=product.bridging_header_path,
            info_plist_path=product.info_plist_path,
        )
        FrameworkBundleAssembler(
            components,
            self.layout.framework_output_dir(platform, self.configuration),
            self.file_system,
            self.events,
            platform=platform,
        ).assemble()
        return product

    def discover_products(self, platform: Platform) -> DiscoveredProduct:
        product_dir = self.layout.products_dir(platform, self.configuration)
        name = self.target.c99_name

        binary_path = product_dir / name
        if not self.file_system.exists(binary_path):
            raise DiscoveryFailure(
                f"xcbuild reported success but {binary_path} does not exist"
            )

        return DiscoveredProduct(
            binary_path=binary_path,
            swift_module_path=self._existing(product_dir / f"{name}.{SWIFT_MODULE_EXTENSION}"),
            bridging_header_path=self._existing(
                self.layout.generated_module_map_dir(platform) / f"{name}{BRIDGING_HEADER_SUFFIX}"
            ),
            public_header_paths=self.collect_public_headers(),
            debug_symbols_path=self._existing(product_dir / f"{name}.framework.dSYM"),
            info_plist_path=(
                self._existing(product_dir / f"{name}.framework" / "Info.plist")
                or self._existing(product_dir / f"{name}.framework" / "Resources" / "Info.plist")
            ),
        )

    def collect_public_headers(self):
        if self.target.kind != NATIVE_KIND:
            return None
        return self.target.public_headers()

    def _existing(self, path: Path) -> Optional[Path]:
        if self.file_system.exists(path):
            return path
        return None

    def create_xcframework_arguments(
        self,
        platforms: Iterable[Platform],
        debug_symbols: Optional[Iterable[Path]],
        output_path: Path,
    ) -> List[str]:
        arguments = []
        for platform in sorted(set(platforms), key=lambda p: p.setting_value):
            arguments += ["-framework", str(self.framework_path(platform))]
        for path in debug_symbols or []:
            arguments += ["-debug-symbols", str(path)]
        arguments += ["-output", str(output_path)]
        # without swiftinterface files createXCFramework refuses to run
        if not self.options.enable_library_evolution:
            arguments.append(ALLOW_INTERNAL_DISTRIBUTION_FLAG)
        return arguments

    def create_xcframework(
        self,
        platforms: Iterable[Platform],
        debug_symbols: Optional[Iterable[Path]],
        output_path: Path,
    ) -> Path:
        """
        Merge the per-platform bundles into ``output_path``.

        Partial output left behind by a failed merge is not cleaned up.
        """
        xcbuild_path = self.tool_locator.locate_build_engine()
        arguments = [str(xcbuild_path), "createXCFramework"] + self.create_xcframework_arguments(
            platforms, debug_symbols, output_path
        )
        self.events.info(
            f"📦 Creating {Path(output_path).name}", target=self.target.name
        )
        try:
            self.executor.execute(*arguments, cancel_event=self.cancel_event)
        except ProcessCancelled:
            raise
        except ProcessFailure as e:
            raise MergeError(self.target.name, e) from e
        return Path(output_path)
