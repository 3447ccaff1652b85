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

import os
import sys
import time
import argparse
from dataclasses import replace

from xcforge.utils.context.namespace import CliNameSpace
from xcforge.utils.context.context import CliContext
from xcforge.utils.context.command import CliCommand
from xcforge.utils.config import ForgeConfig, load_forge_config
from xcforge.utils.events import ConsoleEventSink
from xcforge.producer.errors import ConfigError
from xcforge.producer.models import BuildConfiguration, Platform
from xcforge.producer.pipeline import ProducerPipeline


def add_common_arguments(parser: argparse.ArgumentParser):
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to XCFORGE.toml (default: ./XCFORGE.toml)",
    )
    parser.add_argument(
        "--overwrite",
        action="store_true",
        help="Replace outputs that already exist",
    )
    parser.add_argument(
        "--no-cache",
        action="store_true",
        help="Never reuse an existing output as a cache hit",
    )
    parser.add_argument(
        "-j", "--jobs",
        type=int,
        default=None,
        help="Number of targets processed in parallel (default: CPU count)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show debug output",
    )


def load_config(context: CliContext, args: CliNameSpace) -> ForgeConfig:
    """Load XCFORGE.toml and apply command line overrides, or exit with an error."""
    try:
        config = load_forge_config(context.project_dir, args.config)
        options = config.options
        if getattr(args, "platforms", None):
            platforms = tuple(
                dict.fromkeys(Platform.parse(p) for p in args.platforms.split(",") if p.strip())
            )
            options = replace(options, platforms=platforms)
        if getattr(args, "configuration", None):
            options = replace(
                options, build_configuration=BuildConfiguration.parse(args.configuration)
            )
        if getattr(args, "debug_symbols", False):
            options = replace(options, include_debug_symbols=True)
    except (ConfigError, ValueError) as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    config.options = options
    if args.overwrite:
        config.overwrite = True
    if args.no_cache:
        config.cache_enabled = False
    if args.jobs:
        config.jobs = args.jobs
    return config


def make_pipeline(config: ForgeConfig, args: CliNameSpace) -> ProducerPipeline:
    output_dir = config.layout.output_dir

    def is_cached(target):
        # an output left by a previous run counts as cached unless --no-cache
        return os.path.exists(os.path.join(output_dir, f"{target.c99_name}.xcframework"))

    return ProducerPipeline(
        config.layout,
        config.options,
        events=ConsoleEventSink(verbose=args.verbose),
        jobs=config.jobs,
        overwrite=config.overwrite,
        cache_enabled=config.cache_enabled,
        is_cached=is_cached,
    )


def run_pipeline(pipeline: ProducerPipeline, targets, title: str):
    before_time = time.time()
    print(f"=================={title}========================")
    try:
        results = pipeline.produce(targets)
    except KeyboardInterrupt:
        print("\n\n🛑 Build aborted by user")
        sys.exit(130)

    failed = [r for r in results if not r.is_success]
    print("==================Output========================")
    for result in results:
        if result.is_success:
            status = "⏩ cached" if result.skipped else "✅"
            print(f"{status} {result.target_name}: {result.output_path}")
        else:
            print(f"❌ {result.target_name}: {result.error}")
    print(f"use time: {int(time.time() - before_time)} s")
    if failed:
        print(f"\nERROR: {len(failed)}/{len(results)} target(s) failed")
        sys.exit(1)


class Build(CliCommand):
    def description(self) -> str:
        return """Build XCFrameworks for every target in XCFORGE.toml.

Source targets are built with xcbuild for each platform, assembled into
.framework bundles and merged into <output>/<Target>.xcframework.
Binary targets are copied into the output directory.

PLATFORMS:
    macos, ios, ios_simulator, watchos, watchos_simulator,
    tvos, tvos_simulator, visionos, visionos_simulator
    (SDK names such as iphoneos or iphonesimulator are accepted too)

EXAMPLES:
    xcforge build
    xcforge build --platforms ios,ios_simulator,macos
    xcforge build --configuration debug --debug-symbols
    xcforge build --overwrite -j 2
        """

    def cli(self) -> CliNameSpace:
        parser = argparse.ArgumentParser(
            prog="xcforge build",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            description=self.description(),
        )
        parser.add_argument(
            "--platforms",
            type=str,
            default=None,
            help="Comma-separated platforms, overrides [build] platforms",
        )
        parser.add_argument(
            "--configuration",
            type=str,
            default=None,
            choices=["debug", "release"],
            help="Build configuration, overrides [build] configuration",
        )
        parser.add_argument(
            "--debug-symbols",
            action="store_true",
            help="Embed dSYM bundles into the XCFramework",
        )
        add_common_arguments(parser)
        module_name = os.path.splitext(os.path.basename(__file__))[0]
        input_argv = [x for x in sys.argv[1:] if x != module_name]
        args, unknown = parser.parse_known_args(input_argv, namespace=CliNameSpace())
        return args

    def exec(self, context: CliContext, args: CliNameSpace):
        config = load_config(context, args)
        if not config.targets:
            print("ERROR: No [[targets]] found in XCFORGE.toml")
            sys.exit(1)

        platforms = ", ".join(p.setting_value for p in config.options.platforms)
        print(f"Project: {config.project_name}")
        print(f"Configuration: {config.options.build_configuration.settings_value}")
        print(f"Platforms: {platforms}")
        pipeline = make_pipeline(config, args)
        run_pipeline(pipeline, config.targets, "xcforge build")
