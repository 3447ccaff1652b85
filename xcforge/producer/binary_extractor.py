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

from pathlib import Path

from xcforge.producer.errors import DestinationExists
from xcforge.producer.models import PrebuiltBinaryTarget
from xcforge.utils.events import EventSink, NullEventSink
from xcforge.utils.fs import FileSystem


class BinaryExtractor:
    """
    Copy a pre-built .xcframework into the output directory.

    The copy is a full recursive copy with no recovery: if it fails, the
    destination is left in an undefined state.
    """

    def __init__(self, output_dir: Path, file_system: FileSystem, events: EventSink = None):
        self.output_dir = Path(output_dir)
        self.file_system = file_system
        self.events = events or NullEventSink()

    def destination_path(self, target: PrebuiltBinaryTarget) -> Path:
        return self.output_dir / Path(target.artifact_path).name

    def extract(
        self,
        target: PrebuiltBinaryTarget,
        overwrite: bool,
        cache_enabled: bool,
    ) -> Path:
        """
        Copy ``target.artifact_path`` to ``<output_dir>/<artifact name>``.

        Raises:
            DestinationExists: the destination exists and overwrite is False.
        """
        source_path = Path(target.artifact_path)
        destination_path = self.destination_path(target)

        if self.file_system.exists(destination_path):
            if not overwrite:
                raise DestinationExists(destination_path)
            if cache_enabled:
                self.events.warning(
                    "The overwrite flag takes precedence over the cache flag, "
                    "therefore the cache flag is ignored.",
                    target=target.name,
                )
            self.events.info(f"🗑️  Delete {destination_path.name}", target=target.name)
            self.file_system.remove_tree(destination_path)

        self.file_system.create_directory(self.output_dir)
        self.file_system.copy(source_path, destination_path)
        self.events.success(f"Copied {destination_path.name}", target=target.name)
        return destination_path
