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
import argparse

from xcforge.utils.context.namespace import CliNameSpace
from xcforge.utils.context.context import CliContext
from xcforge.utils.context.command import CliCommand
from xcforge.commands.build import add_common_arguments, load_config, make_pipeline, run_pipeline


class Extract(CliCommand):
    def description(self) -> str:
        return """Copy pre-built binary targets into the output directory.

An existing copy is only replaced with --overwrite; otherwise the command
fails for that target and leaves the existing copy untouched.

EXAMPLES:
    xcforge extract
    xcforge extract --overwrite
        """

    def cli(self) -> CliNameSpace:
        parser = argparse.ArgumentParser(
            prog="xcforge extract",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            description=self.description(),
        )
        add_common_arguments(parser)
        module_name = os.path.splitext(os.path.basename(__file__))[0]
        input_argv = [x for x in sys.argv[1:] if x != module_name]
        args, unknown = parser.parse_known_args(input_argv, namespace=CliNameSpace())
        return args

    def exec(self, context: CliContext, args: CliNameSpace):
        config = load_config(context, args)
        if not config.binary_targets:
            print("No binary targets found in XCFORGE.toml, nothing to extract")
            return
        pipeline = make_pipeline(config, args)
        run_pipeline(pipeline, config.binary_targets, "xcforge extract")
