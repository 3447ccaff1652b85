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
Produce .xcframework bundles for a set of targets.

Targets run in parallel on a thread pool. Platforms of one target run in
order, then the target is merged. Every xcbuild invocation holds a lock keyed
by its derived data path: xcbuild does not isolate concurrent builds sharing
one derived data directory, while independent roots may build in parallel.

cancel() kills in-flight xcbuild processes and prevents queued work from
starting. Nothing already on disk is rolled back.
"""

import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from xcforge.producer.binary_extractor import BinaryExtractor
from xcforge.producer.build_parameters import BuildParametersGenerator
from xcforge.producer.errors import (
    BuildFailure,
    DestinationExists,
    ProcessCancelled,
    XCForgeError,
)
from xcforge.producer.log_decoder import XCBuildOutputDecoder
from xcforge.producer.models import (
    BINARY_KIND,
    BuildOptions,
    BuildState,
    BuildTarget,
    PackageLayout,
    PrebuiltBinaryTarget,
    TargetResult,
)
from xcforge.producer.tool_locator import ToolLocator
from xcforge.producer.xcbuild_client import XCBuildClient
from xcforge.utils.cmd.cmd_util import ProcessExecutor
from xcforge.utils.events import EventSink, NullEventSink
from xcforge.utils.fs import FileSystem, LocalFileSystem


class ProducerPipeline:
    def __init__(
        self,
        layout: PackageLayout,
        options: BuildOptions,
        file_system: Optional[FileSystem] = None,
        executor: Optional[ProcessExecutor] = None,
        events: Optional[EventSink] = None,
        jobs: Optional[int] = None,
        overwrite: bool = False,
        cache_enabled: bool = True,
        is_cached: Optional[Callable[[BuildTarget], bool]] = None,
    ):
        """
        Args:
            layout: Filesystem roots of this run
            options: Build configuration, platforms and flags
            file_system: Filesystem capability (default: local disk)
            executor: Process executor shared by every xcbuild invocation
            events: Event sink for progress reporting
            jobs: Number of targets built in parallel (default: CPU count)
            overwrite: Replace outputs that already exist
            cache_enabled: Whether an existing output may be reused
            is_cached: Tells whether an existing output is a valid cache hit
        """
        self.layout = layout
        self.options = options
        self.file_system = file_system or LocalFileSystem()
        self.executor = executor or ProcessExecutor(decoder=XCBuildOutputDecoder())
        self.events = events or NullEventSink()
        self.jobs = max(1, jobs or os.cpu_count() or 1)
        self.overwrite = overwrite
        self.cache_enabled = cache_enabled
        self.is_cached = is_cached or (lambda target: False)
        self.tool_locator = ToolLocator(self.executor)
        self.cancel_event = threading.Event()
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def cancel(self):
        self.cancel_event.set()

    def build_lock(self, derived_data_path) -> threading.Lock:
        key = os.path.abspath(os.fspath(derived_data_path))
        with self._locks_guard:
            if key not in self._locks:
                self._locks[key] = threading.Lock()
            return self._locks[key]

    def produce(self, targets: Sequence[BuildTarget]) -> List[TargetResult]:
        """Produce every target and return one result per target, in order."""
        if not targets:
            return []
        with ThreadPoolExecutor(max_workers=self.jobs) as pool:
            futures = [pool.submit(self._produce_one, target) for target in targets]
            try:
                return [future.result() for future in futures]
            except KeyboardInterrupt:
                self.cancel()
                raise

    def _produce_one(self, target: BuildTarget) -> TargetResult:
        result = TargetResult(target_name=target.name)
        start = time.time()
        try:
            if self.cancel_event.is_set():
                raise ProcessCancelled()
            if target.kind == BINARY_KIND:
                result.output_path = self.extract_binary(target)
            else:
                self.build_target(target, result)
        except XCForgeError as e:
            result.error = e
            self._report_failure(target, e)
        except OSError as e:
            result.error = e
            self.events.error(f"{target.name} failed: {e}", target=target.name)
        else:
            if not result.skipped:
                self.events.success(
                    f"{target.name} completed ({time.time() - start:.1f}s)",
                    target=target.name,
                )
        return result

    def _report_failure(self, target: BuildTarget, error: XCForgeError):
        if isinstance(error, ProcessCancelled):
            self.events.warning(f"{target.name} cancelled", target=target.name)
        elif isinstance(error, BuildFailure):
            self.events.error(
                f"{target.name} failed for {error.platform.setting_value}",
                target=target.name,
                platform=error.platform.setting_value,
            )
            for line in error.message.splitlines():
                self.events.error(f"   {line}", target=target.name)
        else:
            self.events.error(f"{target.name} failed: {error}", target=target.name)

    def extract_binary(self, target: PrebuiltBinaryTarget) -> Path:
        extractor = BinaryExtractor(self.layout.output_dir, self.file_system, self.events)
        return extractor.extract(
            target, overwrite=self.overwrite, cache_enabled=self.cache_enabled
        )

    def _prepare_output(self, target: BuildTarget, output_path: Path) -> bool:
        """Return False when an existing output can be reused as is."""
        if not self.file_system.exists(output_path):
            return True
        if self.overwrite:
            if self.cache_enabled:
                self.events.warning(
                    "The overwrite flag takes precedence over the cache flag, "
                    "therefore the cache flag is ignored.",
                    target=target.name,
                )
            self.events.info(f"🗑️  Delete {output_path.name}", target=target.name)
            self.file_system.remove_tree(output_path)
            return True
        if self.cache_enabled and self.is_cached(target):
            self.events.success(f"Valid cache found for {target.name}, skip building", target=target.name)
            return False
        raise DestinationExists(output_path)

    def build_target(self, target: BuildTarget, result: TargetResult) -> TargetResult:
        output_path = self.layout.xcframework_path(target)
        if not self._prepare_output(target, output_path):
            result.skipped = True
            result.output_path = output_path
            return result

        client = XCBuildClient(
            self.layout,
            target,
            self.options,
            file_system=self.file_system,
            executor=self.executor,
            tool_locator=self.tool_locator,
            events=self.events,
            build_lock=self.build_lock(self.layout.derived_data_path),
            cancel_event=self.cancel_event,
        )
        parameters = BuildParametersGenerator(self.layout, self.options, self.file_system)
        configuration = self.options.build_configuration
        debug_symbols = []
        try:
            for platform in self.options.platforms:
                if self.cancel_event.is_set():
                    raise ProcessCancelled()
                parameters_path = parameters.generate(platform, configuration, target.c99_name)
                product = client.build_framework(platform, parameters_path)
                if self.options.include_debug_symbols and product.debug_symbols_path:
                    debug_symbols.append(product.debug_symbols_path)
        finally:
            result.states = dict(client.states)

        if not all(client.state(p) is BuildState.DONE for p in self.options.platforms):
            raise XCForgeError(f"{target.name} has unfinished platforms, refusing to merge")
        if self.cancel_event.is_set():
            raise ProcessCancelled()
        self.file_system.create_directory(output_path.parent)
        result.output_path = client.create_xcframework(
            self.options.platforms, debug_symbols or None, output_path
        )
        return result
