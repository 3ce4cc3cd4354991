# Copyright 2025 Lars Marowsky-Brée <lars@marowsky-bree.eu>
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Content-addressed storage for redacted copies of files and prompts."""

import hashlib
import os
import shutil
from pathlib import Path

FILE_HEADER = (
    "# ***FILTERED*** REDACTED VERSION - Some sensitive values have been masked\n"
    "# Original: {path}\n\n"
)
PROMPT_HEADER = "# REDACTED USER INPUT - Sensitive values have been masked\n\n"


def _digest(text: str) -> str:
    """Fixed-width name component derived from key material."""
    return hashlib.sha256(text.encode("utf-8", errors="surrogatepass")).hexdigest()[:16]


def _normalize(path: Path) -> Path:
    """Absolute path with `.` and `..` collapsed, without touching the disk."""
    return Path(os.path.normpath(os.path.abspath(path)))


class RedactedCache:
    """Side store for scrubbed content under a single root directory.

    Entries are named by a digest of their key, so storing the same key
    twice overwrites the same file. The whole root is removed on purge.
    """

    def __init__(self, root: Path) -> None:
        self.root = root

    def contains(self, path: str) -> bool:
        """Whether `path` is the cache root or lies beneath it."""
        candidate = Path(path).expanduser()
        if _normalize(candidate).is_relative_to(_normalize(self.root)):
            return True
        try:
            return candidate.resolve().is_relative_to(self.root.resolve())
        except (OSError, ValueError):
            return False

    def store(self, key_material: str, suffix: str, content: str, header: str) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        path = self.root / f"{_digest(key_material)}_{suffix}"
        # Lone surrogates from JSON escapes cannot be encoded as UTF-8
        path.write_text(header + content, encoding="utf-8", errors="replace")
        return path

    def store_file(self, original_path: str, content: str) -> Path:
        """Store a redacted copy of a file, keyed by its original path."""
        header = FILE_HEADER.format(path=original_path)
        return self.store(original_path, Path(original_path).name, content, header)

    def store_prompt(self, prompt: str, content: str) -> Path:
        """Store a redacted prompt, keyed by the unredacted prompt text."""
        return self.store(prompt, "user_input.txt", content, PROMPT_HEADER)

    def purge(self) -> None:
        """Remove the cache root and everything in it.

        A missing root is not an error. Later stores recreate it.
        """
        try:
            shutil.rmtree(self.root)
        except FileNotFoundError:
            pass
