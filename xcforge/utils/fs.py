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
Filesystem capability used by the producer.

LocalFileSystem works on disk. InMemoryFileSystem keeps a tree of bytes in a
dict so that assembly and extraction can be tested without touching disk.
"""

import errno
import os
import shutil
import threading
from pathlib import PurePosixPath
from typing import Dict, List, Set

# same limit as the kernel's MAXSYMLINKS
MAX_SYMLINK_DEPTH = 40


class FileSystem:
    """Operations the producer needs from a filesystem."""

    def exists(self, path) -> bool:
        raise NotImplementedError

    def is_directory(self, path) -> bool:
        raise NotImplementedError

    def create_directory(self, path, recursive: bool = True):
        raise NotImplementedError

    def copy(self, src, dst):
        """Copy a file or a whole directory tree. ``dst`` must not exist."""
        raise NotImplementedError

    def remove_tree(self, path):
        raise NotImplementedError

    def write_file(self, path, contents):
        raise NotImplementedError

    def read_file(self, path) -> bytes:
        raise NotImplementedError

    def list_directory(self, path) -> List[str]:
        raise NotImplementedError

    def create_symlink(self, path, target):
        """Create ``path`` pointing at ``target``, which is kept as given."""
        raise NotImplementedError

    def read_text(self, path) -> str:
        return self.read_file(path).decode("utf-8")


class LocalFileSystem(FileSystem):
    def exists(self, path) -> bool:
        return os.path.lexists(path)

    def is_directory(self, path) -> bool:
        return os.path.isdir(path)

    def create_directory(self, path, recursive: bool = True):
        if recursive:
            os.makedirs(path, exist_ok=True)
        elif not os.path.isdir(path):
            os.mkdir(path)

    def copy(self, src, dst):
        parent = os.path.dirname(os.fspath(dst))
        if parent:
            os.makedirs(parent, exist_ok=True)
        if os.path.isdir(src):
            shutil.copytree(src, dst, symlinks=True)
        else:
            shutil.copy2(src, dst, follow_symlinks=False)

    def remove_tree(self, path):
        if os.path.isdir(path) and not os.path.islink(path):
            shutil.rmtree(path)
        elif os.path.lexists(path):
            os.remove(path)

    def write_file(self, path, contents):
        if isinstance(contents, str):
            contents = contents.encode("utf-8")
        parent = os.path.dirname(os.fspath(path))
        if parent:
            os.makedirs(parent, exist_ok=True)
        with open(path, "wb") as f:
            f.write(contents)

    def read_file(self, path) -> bytes:
        with open(path, "rb") as f:
            return f.read()

    def list_directory(self, path) -> List[str]:
        return sorted(os.listdir(path))

    def create_symlink(self, path, target):
        parent = os.path.dirname(os.fspath(path))
        if parent:
            os.makedirs(parent, exist_ok=True)
        os.symlink(os.fspath(target), path)


class InMemoryFileSystem(FileSystem):
    """
    A dict-backed filesystem. Paths are normalized to POSIX strings.

    Symlinks are stored with their target text and resolved on access, like
    on disk: ``exists`` and ``remove_tree`` act on the link itself, every
    other operation follows it.
    """

    def __init__(self):
        self.files: Dict[str, bytes] = {}
        self.directories: Set[str] = {"/"}
        self.symlinks: Dict[str, str] = {}
        # shared by pipeline worker threads
        self._lock = threading.RLock()

    @staticmethod
    def _key(path) -> str:
        return str(PurePosixPath(os.path.normpath(os.fspath(path))))

    def _parents(self, key: str):
        return [str(p) for p in PurePosixPath(key).parents]

    def _resolve(self, path, follow_last: bool = True, depth: int = 0) -> str:
        if depth > MAX_SYMLINK_DEPTH:
            raise OSError(errno.ELOOP, "Too many levels of symbolic links", str(path))
        parts = PurePosixPath(self._key(path)).parts
        resolved = PurePosixPath(parts[0])
        with self._lock:
            for index, part in enumerate(parts[1:], start=1):
                candidate = resolved / part
                is_last = index == len(parts) - 1
                target = self.symlinks.get(str(candidate))
                if target is not None and (follow_last or not is_last):
                    candidate = PurePosixPath(
                        self._resolve(candidate.parent / target, True, depth + 1)
                    )
                resolved = candidate
        return str(resolved)

    def exists(self, path) -> bool:
        with self._lock:
            key = self._resolve(path, follow_last=False)
            return key in self.files or key in self.directories or key in self.symlinks

    def is_directory(self, path) -> bool:
        with self._lock:
            return self._resolve(path) in self.directories

    def create_directory(self, path, recursive: bool = True):
        with self._lock:
            key = self._resolve(path)
            if key in self.files:
                raise FileExistsError(key)
            parents = self._parents(key)
            if not recursive and parents and parents[0] not in self.directories:
                raise FileNotFoundError(parents[0])
            self.directories.update(parents)
            self.directories.add(key)

    def write_file(self, path, contents):
        if isinstance(contents, str):
            contents = contents.encode("utf-8")
        with self._lock:
            key = self._resolve(path)
            if key in self.directories:
                raise IsADirectoryError(key)
            self.directories.update(self._parents(key))
            self.files[key] = bytes(contents)

    def read_file(self, path) -> bytes:
        with self._lock:
            key = self._resolve(path)
            if key not in self.files:
                raise FileNotFoundError(key)
            return self.files[key]

    def _descendants(self, key: str):
        prefix = key.rstrip("/") + "/"
        with self._lock:
            files = [f for f in self.files if f.startswith(prefix)]
            dirs = [d for d in self.directories if d.startswith(prefix)]
            links = [s for s in self.symlinks if s.startswith(prefix)]
        return files, dirs, links

    def copy(self, src, dst):
        with self._lock:
            src_key = self._resolve(src)
            dst_key = self._resolve(dst, follow_last=False)
            if dst_key in self.files or dst_key in self.directories or dst_key in self.symlinks:
                raise FileExistsError(dst_key)
            if src_key in self.files:
                self.write_file(dst_key, self.files[src_key])
                return
            if src_key not in self.directories:
                raise FileNotFoundError(src_key)
            self.create_directory(dst_key)
            files, dirs, links = self._descendants(src_key)
            for d in dirs:
                self.directories.add(dst_key + d[len(src_key):])
            for f in files:
                self.files[dst_key + f[len(src_key):]] = self.files[f]
            for link in links:
                self.symlinks[dst_key + link[len(src_key):]] = self.symlinks[link]

    def remove_tree(self, path):
        with self._lock:
            key = self._resolve(path, follow_last=False)
            if key in self.symlinks:
                del self.symlinks[key]
                return
            if key in self.files:
                del self.files[key]
                return
            if key not in self.directories:
                return
            files, dirs, links = self._descendants(key)
            for f in files:
                del self.files[f]
            for link in links:
                del self.symlinks[link]
            for d in dirs:
                self.directories.discard(d)
            self.directories.discard(key)

    def list_directory(self, path) -> List[str]:
        with self._lock:
            key = self._resolve(path)
            if key not in self.directories:
                raise FileNotFoundError(key)
            entries = list(self.files) + list(self.directories) + list(self.symlinks)
        prefix = key.rstrip("/") + "/"
        names = set()
        for entry in entries:
            if entry.startswith(prefix) and entry != key:
                names.add(entry[len(prefix):].split("/", 1)[0])
        return sorted(names)

    def create_symlink(self, path, target):
        with self._lock:
            key = self._resolve(path, follow_last=False)
            if key in self.files or key in self.directories or key in self.symlinks:
                raise FileExistsError(key)
            self.directories.update(self._parents(key))
            self.symlinks[key] = os.fspath(target)

    def tree(self, path) -> Dict[str, bytes]:
        """Relative path -> contents for every regular file under ``path``."""
        with self._lock:
            key = self._resolve(path)
            files, _, _ = self._descendants(key)
            return {f[len(key) + 1:]: self.files[f] for f in sorted(files)}

    def links(self, path) -> Dict[str, str]:
        """Relative path -> target text for every symlink under ``path``."""
        with self._lock:
            key = self._resolve(path)
            _, _, links = self._descendants(key)
            return {s[len(key) + 1:]: self.symlinks[s] for s in sorted(links)}
