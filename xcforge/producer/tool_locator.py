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
import threading
from pathlib import Path
from typing import Optional

from xcforge.producer.errors import ProcessFailure, ToolNotFound
from xcforge.utils.cmd.cmd_util import ProcessExecutor

XCRUN_PATH = "/usr/bin/xcrun"
XCBUILD_RELATIVE_PATH = "../SharedFrameworks/XCBuild.framework/Versions/A/Support/xcbuild"


class ToolLocator:
    """
    Resolve the xcbuild binary from the active developer directory.

    The result is memoized: the selected Xcode does not change during a run.
    """

    def __init__(self, executor: Optional[ProcessExecutor] = None):
        self.executor = executor or ProcessExecutor()
        self._xcbuild_path: Optional[Path] = None
        self._lock = threading.Lock()

    def developer_dir(self) -> Path:
        try:
            result = self.executor.execute(XCRUN_PATH, "xcode-select", "-p")
        except ProcessFailure as e:
            raise ToolNotFound(f"Unable to query the developer directory: {e.message}") from e

        output = result.output.strip()
        if not output or "\n" in output or not os.path.isabs(output):
            raise ToolNotFound(f"Unexpected developer directory: {output!r}")
        return Path(output)

    def locate_build_engine(self) -> Path:
        with self._lock:
            if self._xcbuild_path is None:
                developer_dir = self.developer_dir()
                self._xcbuild_path = Path(
                    os.path.normpath(developer_dir / XCBUILD_RELATIVE_PATH)
                )
            return self._xcbuild_path
