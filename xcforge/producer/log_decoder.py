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
Extract error text from xcbuild output.

xcbuild mixes plain text with single-line JSON messages. Most JSON lines are
progress telemetry; the rest carry a ``message`` or ``data`` field worth
showing to the user.
"""

import json
from dataclasses import dataclass
from typing import Optional

from xcforge.producer.models import ExecutorResult
from xcforge.utils.cmd.cmd_util import ErrorDecoder

IGNORED_KINDS = frozenset(["didUpdateProgress"])


@dataclass(frozen=True)
class BuildLogLine:
    kind: Optional[str] = None
    result: Optional[str] = None
    error: Optional[str] = None
    message: Optional[str] = None
    data: Optional[str] = None

    @property
    def is_ignored(self) -> bool:
        return self.kind in IGNORED_KINDS

    @property
    def text(self) -> Optional[str]:
        return self.message or self.data or None

    @classmethod
    def parse(cls, line: str) -> Optional["BuildLogLine"]:
        """Parse one line, or return None when it is not a JSON object."""
        try:
            payload = json.loads(line)
        except ValueError:
            return None
        if not isinstance(payload, dict):
            return None

        def string_field(key):
            value = payload.get(key)
            return value if isinstance(value, str) else None

        return cls(
            kind=string_field("kind"),
            result=string_field("result"),
            error=string_field("error"),
            message=string_field("message"),
            data=string_field("data"),
        )


class XCBuildOutputDecoder(ErrorDecoder):
    def decode(self, result: ExecutorResult) -> Optional[str]:
        lines = []
        for raw_line in result.output.split("\n"):
            info = BuildLogLine.parse(raw_line)
            if info is None or info.is_ignored:
                continue
            if info.text:
                lines.append(info.text)
        if not lines:
            return None
        return "\n".join(lines)
