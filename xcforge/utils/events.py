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

"""
Event sinks passed explicitly to producer components.

Components never print; they emit (severity, message, fields) events and the
caller decides how those are shown.
"""

import sys
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List

DEBUG = "debug"
INFO = "info"
SUCCESS = "success"
WARNING = "warning"
ERROR = "error"


@dataclass(frozen=True)
class Event:
    severity: str
    message: str
    fields: Dict[str, Any] = field(default_factory=dict)


class EventSink:
    def emit(self, severity: str, message: str, **fields):
        raise NotImplementedError

    def debug(self, message: str, **fields):
        self.emit(DEBUG, message, **fields)

    def info(self, message: str, **fields):
        self.emit(INFO, message, **fields)

    def success(self, message: str, **fields):
        self.emit(SUCCESS, message, **fields)

    def warning(self, message: str, **fields):
        self.emit(WARNING, message, **fields)

    def error(self, message: str, **fields):
        self.emit(ERROR, message, **fields)


class ConsoleEventSink(EventSink):
    """Print events in the same style as the command layer."""

    PREFIXES = {
        DEBUG: "   ",
        INFO: "   ℹ ",
        SUCCESS: "✅ ",
        WARNING: "   ⚠️  Warning: ",
        ERROR: "❌ ",
    }

    def __init__(self, verbose: bool = False, stream=None):
        self.verbose = verbose
        self.stream = stream
        self._lock = threading.Lock()

    def emit(self, severity: str, message: str, **fields):
        if severity == DEBUG and not self.verbose:
            return
        line = self.PREFIXES.get(severity, "") + message
        if self.verbose and fields:
            details = ", ".join(f"{k}={v}" for k, v in sorted(fields.items()))
            line += f" ({details})"
        stream = self.stream or (sys.stderr if severity == ERROR else sys.stdout)
        # builds report from worker threads
        with self._lock:
            print(line, file=stream, flush=True)


class RecordingEventSink(EventSink):
    """Keep events in memory, for tests."""

    def __init__(self):
        self.events: List[Event] = []
        self._lock = threading.Lock()

    def emit(self, severity: str, message: str, **fields):
        with self._lock:
            self.events.append(Event(severity, message, dict(fields)))

    def messages(self, severity: str = None) -> List[str]:
        return [e.message for e in self.events if severity is None or e.severity == severity]


class NullEventSink(EventSink):
    def emit(self, severity: str, message: str, **fields):
        pass
