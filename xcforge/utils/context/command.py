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

from xcforge.utils.context.context import CliContext
from xcforge.utils.context.namespace import CliNameSpace


# Base class of every `xcforge <command>`
class CliCommand:
    def description(self) -> str:
        raise NotImplementedError

    def cli(self) -> CliNameSpace:
        raise NotImplementedError

    def exec(self, context: CliContext, args: CliNameSpace):
        raise NotImplementedError
