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

"""Scripted stand-in for ProcessExecutor, used by tests."""

import os
import threading
from typing import Callable, List, Optional, Tuple

from xcforge.producer.errors import ProcessCancelled, ProcessFailure
from xcforge.producer.models import ExecutorResult
from xcforge.utils.cmd.cmd_util import ErrorDecoder, ProcessExecutor, StandardErrorDecoder

DEVELOPER_DIR = "/Applications/Xcode.app/Contents/Developer"


class ScriptedExecutor(ProcessExecutor):
    """
    Answer commands from a handler instead of spawning processes.

    ``handler(arguments)`` returns an ExecutorResult, a tuple
    ``(exit_code, output, stderr)`` or None for a silent success. The
    ``xcode-select -p`` query is answered with DEVELOPER_DIR unless the
    handler answers it first.
    """

    def __init__(
        self,
        handler: Optional[Callable[[Tuple[str, ...]], object]] = None,
        decoder: Optional[ErrorDecoder] = None,
    ):
        super().__init__(decoder=decoder or StandardErrorDecoder())
        self.handler = handler
        self.calls: List[Tuple[str, ...]] = []
        self._lock = threading.Lock()

    def execute(self, *arguments, cancel_event: Optional[threading.Event] = None) -> ExecutorResult:
        arguments = tuple(os.fspath(arg) for arg in arguments)
        with self._lock:
            self.calls.append(arguments)
        if cancel_event is not None and cancel_event.is_set():
            raise ProcessCancelled(arguments)

        answer = self.handler(arguments) if self.handler else None
        if answer is None and arguments[1:] == ("xcode-select", "-p"):
            answer = (0, DEVELOPER_DIR + "\n", "")
        if answer is None:
            answer = (0, "", "")
        if not isinstance(answer, ExecutorResult):
            exit_code, output, stderr = answer
            answer = ExecutorResult(exit_code, output, stderr, arguments)

        if not answer.is_success:
            raise ProcessFailure(
                answer.exit_code,
                stderr=answer.stderr,
                output=answer.output,
                arguments=arguments,
                message=self.decoder.decode(answer),
            )
        return answer

    def calls_of(self, subcommand: str) -> List[Tuple[str, ...]]:
        return [call for call in self.calls if len(call) > 1 and call[1] == subcommand]
