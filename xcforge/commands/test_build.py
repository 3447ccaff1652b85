#!/usr/bin/env python3
"""
Tests for the build and extract commands.

Run with: python3 -m pytest xcforge/commands/test_build.py
"""

import io
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path

from xcforge.commands.build import load_config, run_pipeline
from xcforge.producer.models import (
    BuildConfiguration,
    BuildOptions,
    Platform,
    PrebuiltBinaryTarget,
)
from xcforge.producer.pipeline import ProducerPipeline
from xcforge.producer.test_xcbuild_client import LAYOUT
from xcforge.utils.config import CONFIG_FILE_NAME
from xcforge.utils.context.context import CliContext
from xcforge.utils.context.namespace import CliNameSpace
from xcforge.utils.fs import InMemoryFileSystem

CONFIG = """
[project]
name = "Kit"

[build]
platforms = ["ios"]

[[targets]]
name = "Kit"
"""


def make_args(**kwargs):
    args = CliNameSpace()
    args.config = None
    args.overwrite = False
    args.no_cache = False
    args.jobs = None
    args.verbose = False
    for key, value in kwargs.items():
        setattr(args, key, value)
    return args


class TestLoadConfig(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.project_dir = Path(self._tmp.name)
        (self.project_dir / CONFIG_FILE_NAME).write_text(CONFIG)
        self.context = CliContext(project_dir=str(self.project_dir))

    def test_command_line_overrides(self):
        args = make_args(
            platforms="ios_simulator,macos",
            configuration="debug",
            debug_symbols=True,
            overwrite=True,
            no_cache=True,
            jobs=3,
        )
        config = load_config(self.context, args)
        self.assertEqual(config.options.platforms, (Platform.IOS_SIMULATOR, Platform.MACOS))
        self.assertIs(config.options.build_configuration, BuildConfiguration.DEBUG)
        self.assertTrue(config.options.include_debug_symbols)
        self.assertTrue(config.overwrite)
        self.assertFalse(config.cache_enabled)
        self.assertEqual(config.jobs, 3)

    def test_without_overrides_uses_file(self):
        config = load_config(self.context, make_args())
        self.assertEqual(config.options.platforms, (Platform.IOS,))
        self.assertTrue(config.cache_enabled)

    def test_invalid_platform_exits(self):
        with redirect_stdout(io.StringIO()) as out, self.assertRaises(SystemExit) as cm:
            load_config(self.context, make_args(platforms="android"))
        self.assertEqual(cm.exception.code, 1)
        self.assertIn("ERROR: Unknown platform", out.getvalue())

    def test_missing_config_exits(self):
        with redirect_stdout(io.StringIO()), self.assertRaises(SystemExit):
            load_config(CliContext(project_dir=str(self.project_dir / "nope")), make_args())


class TestRunPipeline(unittest.TestCase):
    def setUp(self):
        self.fs = InMemoryFileSystem()
        self.fs.write_file("/vendor/Bin.xcframework/Info.plist", "bin")
        self.pipeline = ProducerPipeline(
            LAYOUT, BuildOptions(platforms=(Platform.IOS,)), file_system=self.fs
        )

    def test_success_prints_outputs(self):
        target = PrebuiltBinaryTarget("Bin", Path("/vendor/Bin.xcframework"))
        with redirect_stdout(io.StringIO()) as out:
            run_pipeline(self.pipeline, [target], "xcforge extract")
        self.assertIn("✅ Bin: /work/XCFrameworks/Bin.xcframework", out.getvalue())

    def test_failure_exits_non_zero(self):
        target = PrebuiltBinaryTarget("Missing", Path("/vendor/Missing.xcframework"))
        with redirect_stdout(io.StringIO()) as out, self.assertRaises(SystemExit) as cm:
            run_pipeline(self.pipeline, [target], "xcforge extract")
        self.assertEqual(cm.exception.code, 1)
        self.assertIn("1/1 target(s) failed", out.getvalue())


if __name__ == "__main__":
    unittest.main(argv=[''], exit=False, verbosity=2)
