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
import subprocess
import threading
import time
from threading import Timer
from typing import Optional

from xcforge.producer.errors import ProcessCancelled, ProcessFailure
from xcforge.producer.models import ExecutorResult

# timeout is 3 hours
DEFAULT_TIMEOUT_SECOND = 3 * 3600
CANCEL_POLL_SECOND = 0.2


def decode_bytes(input: bytes) -> str:
    """
    Decode process output, falling back to GBK when it is not UTF-8.
    """
    if not input:
        return ""
    try:
        return bytes.decode(input, "UTF-8")
    except UnicodeDecodeError:
        return bytes.decode(input, "GBK", errors="replace")


class ErrorDecoder:
    """Turns a failed process result into a human readable message."""

    def decode(self, result: ExecutorResult) -> Optional[str]:
        raise NotImplementedError


class StandardErrorDecoder(ErrorDecoder):
    def decode(self, result: ExecutorResult) -> Optional[str]:
        return result.stderr.strip() or result.output.strip() or None


class ProcessExecutor:
    """
    Run an external command and capture its output.

    Output is fully drained with communicate() before the exit status is read.
    A non-zero exit raises ProcessFailure whose message comes from the
    decoder. Setting ``cancel_event`` kills the child and raises
    ProcessCancelled.
    """

    def __init__(
        self,
        decoder: Optional[ErrorDecoder] = None,
        timeout_second: float = DEFAULT_TIMEOUT_SECOND,
        cwd=None,
        env=None,
    ):
        self.decoder = decoder or StandardErrorDecoder()
        self.timeout_second = timeout_second
        self.cwd = cwd
        self.env = env

    def execute(self, *arguments, cancel_event: Optional[threading.Event] = None) -> ExecutorResult:
        arguments = tuple(os.fspath(arg) for arg in arguments)
        if cancel_event is not None and cancel_event.is_set():
            raise ProcessCancelled(arguments)

        start_mills = int(time.time() * 1000)
        try:
            popen = subprocess.Popen(
                arguments,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                cwd=self.cwd,
                env=self.env,
            )
        except OSError as e:
            raise ProcessFailure(127, stderr=str(e), arguments=arguments) from e

        finished = threading.Event()
        cancelled = threading.Event()

        def kill_on_cancel():
            while not finished.is_set():
                if cancel_event.wait(CANCEL_POLL_SECOND):
                    if popen.poll() is None:
                        cancelled.set()
                        popen.kill()
                    return

        timer = Timer(self.timeout_second, lambda process: process.kill(), [popen])
        watcher = None
        if cancel_event is not None:
            watcher = threading.Thread(target=kill_on_cancel, daemon=True)
        try:
            timer.start()
            if watcher is not None:
                watcher.start()
            stdout, stderr = popen.communicate()
        finally:
            timer.cancel()
            finished.set()
            if watcher is not None:
                watcher.join()

        if cancelled.is_set():
            raise ProcessCancelled(arguments)

        result = ExecutorResult(
            exit_code=popen.returncode,
            output=decode_bytes(stdout),
            stderr=decode_bytes(stderr),
            arguments=arguments,
        )
        if result.exit_code == -9 and not result.stderr:
            use_time = int(time.time() * 1000) - start_mills
            result = ExecutorResult(
                exit_code=result.exit_code,
                output=result.output,
                stderr=f"Failed for timeout({result.exit_code}), use_time: {use_time}ms",
                arguments=arguments,
            )
        if not result.is_success:
            raise ProcessFailure(
                result.exit_code,
                stderr=result.stderr,
                output=result.output,
                arguments=arguments,
                message=self.decoder.decode(result),
            )
        return result
