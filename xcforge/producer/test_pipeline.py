#!/usr/bin/env python3
"""
Tests for the producer pipeline: scheduling, cache rules and cancellation.

Run with: python3 -m pytest xcforge/producer/test_pipeline.py
"""

import json
import threading
import time
import unittest
from pathlib import Path

from xcforge.producer.build_parameters import BuildParametersGenerator
from xcforge.producer.errors import (
    BuildFailure,
    DestinationExists,
    ModuleMapGenerationError,
    ProcessCancelled,
)
from xcforge.producer.models import (
    BuildConfiguration,
    BuildOptions,
    BuildState,
    CustomModuleMap,
    InterfaceOnlyTarget,
    NativeTarget,
    Platform,
    PrebuiltBinaryTarget,
)
from xcforge.producer.pipeline import ProducerPipeline
from xcforge.producer.test_xcbuild_client import LAYOUT, FakeXCBuild
from xcforge.utils.cmd.fake_executor import ScriptedExecutor
from xcforge.utils.events import RecordingEventSink
from xcforge.utils.fs import InMemoryFileSystem

OPTIONS = BuildOptions(platforms=(Platform.MACOS, Platform.IOS))


class TestProducerPipeline(unittest.TestCase):
    def setUp(self):
        self.fs = InMemoryFileSystem()
        self.fake = FakeXCBuild(self.fs)
        self.executor = ScriptedExecutor(self.fake)
        self.events = RecordingEventSink()

    def pipeline(self, options=OPTIONS, **kwargs):
        return ProducerPipeline(
            LAYOUT,
            options,
            file_system=self.fs,
            executor=self.executor,
            events=self.events,
            **kwargs,
        )

    def test_builds_and_merges_each_target(self):
        results = self.pipeline(jobs=2).produce([InterfaceOnlyTarget("Foo"), InterfaceOnlyTarget("Bar")])

        self.assertEqual([r.target_name for r in results], ["Foo", "Bar"])
        for result in results:
            self.assertTrue(result.is_success, result.error)
            self.assertEqual(result.output_path, LAYOUT.output_dir / f"{result.target_name}.xcframework")
            self.assertEqual(
                result.states, {Platform.MACOS: BuildState.DONE, Platform.IOS: BuildState.DONE}
            )
        self.assertEqual(len(self.executor.calls_of("build")), 4)
        self.assertEqual(len(self.executor.calls_of("createXCFramework")), 2)
        self.assertEqual(len(self.executor.calls_of("xcode-select")), 1)

    def test_debug_symbols_are_passed_to_merge(self):
        options = BuildOptions(platforms=(Platform.IOS,), include_debug_symbols=True)
        self.pipeline(options).produce([InterfaceOnlyTarget("Foo")])
        call = self.executor.calls_of("createXCFramework")[0]
        self.assertEqual(
            call[call.index("-debug-symbols") + 1],
            "/work/DerivedData/Products/Release-iphoneos/Foo.framework.dSYM",
        )

    def test_failed_platform_stops_target_before_merge(self):
        self.fake.failures[Platform.MACOS] = '{"message":"error: no such module"}'
        results = self.pipeline().produce([InterfaceOnlyTarget("Foo")])

        error = results[0].error
        self.assertIsInstance(error, BuildFailure)
        self.assertEqual(error.message, "error: no such module")
        self.assertEqual(results[0].states, {Platform.MACOS: BuildState.FAILED})
        self.assertEqual(self.executor.calls_of("createXCFramework"), [])
        self.assertIn("   error: no such module", self.events.messages("error"))

    def test_failure_of_one_target_does_not_stop_others(self):
        def handler(arguments):
            if arguments[1] == "build" and arguments[-1].startswith("Bad_"):
                return (1, '{"message":"bad"}', "")
            return self.fake(arguments)

        self.executor.handler = handler
        results = self.pipeline().produce([InterfaceOnlyTarget("Bad"), InterfaceOnlyTarget("Good")])
        self.assertFalse(results[0].is_success)
        self.assertTrue(results[1].is_success)

    def test_unreadable_module_map_fails_only_its_target(self):
        include = Path("/src/CBad/include")
        custom = Path("/src/CBad/module.modulemap")
        self.fs.write_file(custom, b"\xff\xfe")
        bad = NativeTarget("CBad", include, (), CustomModuleMap(custom))

        results = self.pipeline().produce([bad, InterfaceOnlyTarget("Good")])
        self.assertEqual(len(results), 2)
        self.assertIsInstance(results[0].error, ModuleMapGenerationError)
        self.assertIn("not valid UTF-8", str(results[0].error))
        self.assertEqual(results[0].states[Platform.MACOS], BuildState.FAILED)
        self.assertTrue(results[1].is_success, results[1].error)
        self.assertEqual(len(self.executor.calls_of("createXCFramework")), 1)

    def test_existing_output_without_overwrite(self):
        self.fs.write_file(LAYOUT.output_dir / "Foo.xcframework" / "Info.plist", "old")
        results = self.pipeline().produce([InterfaceOnlyTarget("Foo")])
        self.assertIsInstance(results[0].error, DestinationExists)
        self.assertEqual(self.executor.calls_of("build"), [])
        self.assertEqual(
            self.fs.read_text(LAYOUT.output_dir / "Foo.xcframework" / "Info.plist"), "old"
        )

    def test_existing_output_with_valid_cache_is_skipped(self):
        self.fs.write_file(LAYOUT.output_dir / "Foo.xcframework" / "Info.plist", "old")
        results = self.pipeline(is_cached=lambda target: True).produce([InterfaceOnlyTarget("Foo")])
        self.assertTrue(results[0].is_success)
        self.assertTrue(results[0].skipped)
        self.assertEqual(self.executor.calls_of("build"), [])

    def test_overwrite_takes_precedence_over_cache(self):
        self.fs.write_file(LAYOUT.output_dir / "Foo.xcframework" / "stale", "old")
        results = self.pipeline(overwrite=True, is_cached=lambda target: True).produce(
            [InterfaceOnlyTarget("Foo")]
        )
        self.assertTrue(results[0].is_success, results[0].error)
        self.assertFalse(results[0].skipped)
        self.assertFalse(self.fs.exists(LAYOUT.output_dir / "Foo.xcframework" / "stale"))
        self.assertEqual(len(self.executor.calls_of("createXCFramework")), 1)
        self.assertEqual(len(self.events.messages("warning")), 1)

    def test_binary_targets_are_extracted(self):
        artifact = Path("/vendor/Bin.xcframework")
        self.fs.write_file(artifact / "Info.plist", "bin")
        results = self.pipeline().produce([PrebuiltBinaryTarget("Bin", artifact)])
        self.assertEqual(results[0].output_path, LAYOUT.output_dir / "Bin.xcframework")
        self.assertEqual(self.executor.calls, [])

    def test_builds_sharing_derived_data_are_serialized(self):
        active = []
        overlaps = []
        lock = threading.Lock()

        def handler(arguments):
            if arguments[1] != "build":
                return self.fake(arguments)
            with lock:
                active.append(arguments)
                if len(active) > 1:
                    overlaps.append(len(active))
            time.sleep(0.01)
            try:
                return self.fake(arguments)
            finally:
                with lock:
                    active.remove(arguments)

        self.executor.handler = handler
        targets = [InterfaceOnlyTarget(f"T{i}") for i in range(4)]
        results = self.pipeline(jobs=4).produce(targets)
        self.assertTrue(all(r.is_success for r in results))
        self.assertEqual(overlaps, [])

    def test_build_lock_is_shared_per_derived_data_path(self):
        pipeline = self.pipeline()
        self.assertIs(pipeline.build_lock(Path("/dd")), pipeline.build_lock("/dd"))
        self.assertIsNot(pipeline.build_lock("/dd"), pipeline.build_lock("/other"))

    def test_cancelled_pipeline_starts_nothing(self):
        pipeline = self.pipeline()
        pipeline.cancel()
        results = pipeline.produce([InterfaceOnlyTarget("Foo")])
        self.assertIsInstance(results[0].error, ProcessCancelled)
        self.assertEqual(self.executor.calls, [])

    def test_cancel_during_build_stops_remaining_platforms(self):
        pipeline = self.pipeline()

        def handler(arguments):
            result = self.fake(arguments)
            if arguments[1] == "build":
                pipeline.cancel()
            return result

        self.executor.handler = handler
        results = pipeline.produce([InterfaceOnlyTarget("Foo")])
        self.assertIsInstance(results[0].error, ProcessCancelled)
        self.assertEqual(len(self.executor.calls_of("build")), 1)
        self.assertEqual(self.executor.calls_of("createXCFramework"), [])

    def test_empty_target_list(self):
        self.assertEqual(self.pipeline().produce([]), [])


class TestBuildParametersGenerator(unittest.TestCase):
    def test_parameters_file(self):
        fs = InMemoryFileSystem()
        options = BuildOptions(
            enable_library_evolution=False,
            extra_build_settings={"IPHONEOS_DEPLOYMENT_TARGET": "13.0"},
        )
        path = BuildParametersGenerator(LAYOUT, options, fs).generate(
            Platform.IOS_SIMULATOR, BuildConfiguration.DEBUG, "Foo"
        )
        self.assertEqual(
            path, Path("/work/DerivedData/BuildParameters/Foo/Debug-iphonesimulator.json")
        )
        parameters = json.loads(fs.read_text(path))
        self.assertEqual(parameters["configurationName"], "Debug")
        self.assertEqual(parameters["activeRunDestination"]["sdk"], "iphonesimulator")
        table = parameters["overrides"]["synthesized"]["table"]
        self.assertEqual(table["BUILD_LIBRARY_FOR_DISTRIBUTION"], "NO")
        self.assertEqual(table["DEBUG_INFORMATION_FORMAT"], "dwarf-with-dsym")
        self.assertEqual(table["IPHONEOS_DEPLOYMENT_TARGET"], "13.0")


if __name__ == "__main__":
    unittest.main(argv=[''], exit=False, verbosity=2)
