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
import importlib
import argparse

from xcforge.utils.context.namespace import CliNameSpace
from xcforge.utils.context.context import CliContext
from xcforge.utils.context.command import CliCommand

SCRIPT_PATH = os.path.split(os.path.realpath(__file__))[0]
PACKAGE_NAME = os.path.basename(SCRIPT_PATH)


# Root Class for Command Line Interface
class Cli(CliCommand):
    def description(self) -> str:
        return """xcforge - XCFramework producer

Builds package targets with xcbuild for every requested Apple platform,
assembles one .framework per platform and merges them into an .xcframework.

USAGE:
    xcforge <command> [options]

COMMANDS:
    build       Build source targets and extract binary targets
    extract     Copy pre-built binary targets only

EXAMPLES:
    xcforge build                                  # Build everything in XCFORGE.toml
    xcforge build --platforms ios,ios_simulator    # Override platforms
    xcforge build --overwrite                      # Replace existing outputs
    xcforge extract --overwrite                    # Refresh binary targets

For more information on a specific command:
    xcforge <command> --help
        """

    def get_command_list(self) -> list:
        arr = []
        for command in os.listdir(os.path.join(SCRIPT_PATH, "commands")):
            # test modules live beside the commands
            if command.startswith(("_", "test_")) or not command.endswith(".py"):
                continue
            arr.append(os.path.splitext(os.path.basename(command))[0])
        return sorted(arr)

    def _parser(self, add_help: bool) -> argparse.ArgumentParser:
        parser = argparse.ArgumentParser(
            prog=PACKAGE_NAME,
            formatter_class=argparse.RawDescriptionHelpFormatter,
            description=self.description(),
            add_help=add_help,
        )
        parser.add_argument(
            "subcommand",
            metavar=f"{self.get_command_list()}",
            type=str,
            nargs='?' if not add_help else None,
            choices=self.get_command_list(),
        )
        return parser

    def cli(self) -> CliNameSpace:
        # `xcforge --help` shows this help, `xcforge build --help` is left to the subcommand
        if len(sys.argv) == 2 and sys.argv[1] in ['--help', '-h']:
            self._parser(add_help=True).print_help()
            sys.exit(0)

        args, unknown = self._parser(add_help=False).parse_known_args(namespace=CliNameSpace())
        return args

    def exec(self, context: CliContext, args: CliNameSpace):
        if not args.subcommand:
            print("ERROR: No command specified\n")
            self._parser(add_help=True).print_help()
            sys.exit(1)

        module = importlib.import_module(f"{PACKAGE_NAME}.commands.{args.subcommand}")
        klass = getattr(module, args.subcommand.capitalize())
        sub_cmd = klass()
        sub_cmd.exec(context, sub_cmd.cli())


def main():
    cmd = Cli()
    cmd.exec(CliContext(), cmd.cli())


if __name__ == "__main__":
    main()
