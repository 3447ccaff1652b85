#!/usr/bin/env python3
"""
Tests for XCFORGE.toml parsing.

Run with: python3 -m pytest xcforge/utils/test_config.py
"""

import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from xcforge.producer.errors import ConfigError
from xcforge.producer.models import (
    BuildConfiguration,
    CustomModuleMap,
    InterfaceOnlyTarget,
    NativeTarget,
    Platform,
    PrebuiltBinaryTarget,
    UmbrellaDirectory,
    UmbrellaHeader,
)
from xcforge.utils.config import (
    CONFIG_FILE_NAME,
    expand_env,
    load_forge_config,
    parse_forge_config,
)

PROJECT_DIR = Path("/work/MyKit")


class TestParseForgeConfig(unittest.TestCase):
    def test_defaults(self):
        config = parse_forge_config({}, PROJECT_DIR)
        self.assertEqual(config.project_name, "MyKit")
        self.assertEqual(config.layout.project_path, PROJECT_DIR / "MyKit.pif")
        self.assertEqual(config.layout.derived_data_path, PROJECT_DIR / ".xcforge/DerivedData")
        self.assertEqual(config.layout.generated_frameworks_dir, PROJECT_DIR / ".xcforge/Frameworks")
        self.assertEqual(config.layout.output_dir, PROJECT_DIR / "XCFrameworks")
        self.assertEqual(config.options.platforms, (Platform.IOS, Platform.IOS_SIMULATOR))
        self.assertIs(config.options.build_configuration, BuildConfiguration.RELEASE)
        self.assertTrue(config.options.enable_library_evolution)
        self.assertFalse(config.options.include_debug_symbols)
        self.assertEqual(config.targets, [])
        self.assertIsNone(config.jobs)
        self.assertFalse(config.overwrite)
        self.assertTrue(config.cache_enabled)

    def test_full_config(self):
        data = {
            "project": {"name": "Kit"},
            "paths": {"project": "/abs/Kit.pif", "output": "dist"},
            "build": {
                "platforms": ["macosx", "ios", "ios-simulator", "ios"],
                "configuration": "debug",
                "library_evolution": False,
                "debug_symbols": True,
                "settings": {"IPHONEOS_DEPLOYMENT_TARGET": 13},
                "jobs": 2,
                "overwrite": True,
                "cache": False,
            },
            "targets": [
                {"name": "Kit"},
                {"name": "CKit", "kind": "native", "include_dir": "Sources/CKit/include",
                 "headers": ["Sources/CKit/include/CKit.h"],
                 "umbrella_header": "Sources/CKit/include/CKit.h"},
                {"name": "Vendor", "kind": "binary", "artifact": "Vendor/Vendor.xcframework"},
            ],
        }
        config = parse_forge_config(data, PROJECT_DIR)
        self.assertEqual(config.layout.project_path, Path("/abs/Kit.pif"))
        self.assertEqual(config.layout.output_dir, PROJECT_DIR / "dist")
        self.assertEqual(
            config.options.platforms, (Platform.MACOS, Platform.IOS, Platform.IOS_SIMULATOR)
        )
        self.assertIs(config.options.build_configuration, BuildConfiguration.DEBUG)
        self.assertFalse(config.options.enable_library_evolution)
        self.assertTrue(config.options.include_debug_symbols)
        self.assertEqual(config.options.extra_build_settings, {"IPHONEOS_DEPLOYMENT_TARGET": "13"})
        self.assertEqual(config.jobs, 2)
        self.assertTrue(config.overwrite)
        self.assertFalse(config.cache_enabled)

        interface, native, binary = config.targets
        self.assertEqual(interface, InterfaceOnlyTarget("Kit"))
        self.assertIsInstance(native, NativeTarget)
        self.assertEqual(native.include_dir, PROJECT_DIR / "Sources/CKit/include")
        self.assertEqual(
            native.module_map_type, UmbrellaHeader(PROJECT_DIR / "Sources/CKit/include/CKit.h")
        )
        self.assertEqual(
            binary, PrebuiltBinaryTarget("Vendor", PROJECT_DIR / "Vendor/Vendor.xcframework")
        )
        self.assertEqual(config.source_targets, [interface, native])
        self.assertEqual(config.binary_targets, [binary])

    def test_module_map_kinds(self):
        targets = parse_forge_config(
            {"targets": [
                {"name": "A", "kind": "native", "module_map": "A/module.modulemap"},
                {"name": "B", "kind": "native", "umbrella_directory": "B/include"},
                {"name": "C", "kind": "native"},
            ]},
            PROJECT_DIR,
        ).targets
        self.assertEqual(targets[0].module_map_type, CustomModuleMap(PROJECT_DIR / "A/module.modulemap"))
        self.assertEqual(targets[1].module_map_type, UmbrellaDirectory(PROJECT_DIR / "B/include"))
        self.assertIsNone(targets[2].module_map_type)
        self.assertEqual(targets[2].include_dir, PROJECT_DIR / "include")

    def test_platforms_as_comma_separated_string(self):
        config = parse_forge_config({"build": {"platforms": "ios,tvos"}}, PROJECT_DIR)
        self.assertEqual(config.options.platforms, (Platform.IOS, Platform.TVOS))

    def test_environment_expansion(self):
        with mock.patch.dict(os.environ, {"XCF_OUT": "/tmp/out", "XCF_NAME": "EnvKit"}):
            config = parse_forge_config(
                {"project": {"name": "${XCF_NAME}"}, "paths": {"output": "$XCF_OUT"}},
                PROJECT_DIR,
            )
        self.assertEqual(config.project_name, "EnvKit")
        self.assertEqual(config.layout.output_dir, Path("/tmp/out"))
        self.assertEqual(config.layout.project_path, PROJECT_DIR / "EnvKit.pif")

    def test_invalid_values(self):
        invalid = [
            {"build": {"platforms": ["android"]}},
            {"build": {"platforms": []}},
            {"build": {"configuration": "profile"}},
            {"build": {"settings": "nope"}},
            {"build": {"jobs": 0}},
            {"targets": [{"kind": "native"}]},
            {"targets": [{"name": "X", "kind": "script"}]},
            {"targets": [{"name": "X", "kind": "binary"}]},
            {"targets": [{"name": "X"}, {"name": "X", "kind": "native"}]},
        ]
        for data in invalid:
            with self.subTest(data=data), self.assertRaises(ConfigError):
                parse_forge_config(data, PROJECT_DIR)


class TestExpandEnv(unittest.TestCase):
    def test_expand(self):
        with mock.patch.dict(os.environ, {"XCF_HOME": "/h"}, clear=False):
            self.assertEqual(expand_env("${XCF_HOME}/a/$XCF_HOME"), "/h/a//h")
        self.assertEqual(expand_env("$XCF_UNSET_VARIABLE_42"), "$XCF_UNSET_VARIABLE_42")
        self.assertEqual(expand_env(3), 3)


class TestLoadForgeConfig(unittest.TestCase):
    def test_load_from_project_dir(self):
        with tempfile.TemporaryDirectory() as tmp:
            Path(tmp, CONFIG_FILE_NAME).write_text(
                '[project]\nname = "Disk"\n\n[[targets]]\nname = "Disk"\n'
            )
            config = load_forge_config(tmp)
        self.assertEqual(config.project_name, "Disk")
        self.assertEqual(config.targets, [InterfaceOnlyTarget("Disk")])

    def test_missing_file(self):
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(ConfigError):
                load_forge_config(tmp)

    def test_invalid_toml(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp, "custom.toml")
            path.write_text("[project\nname=")
            with self.assertRaises(ConfigError):
                load_forge_config(tmp, str(path))


if __name__ == "__main__":
    unittest.main(argv=[''], exit=False, verbosity=2)
