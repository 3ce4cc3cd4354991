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

"""System clipboard access."""

import os
import platform
import subprocess
from collections.abc import Callable

from .models import ClipboardError

Clipboard = Callable[[str], None]

CLIPBOARD_COMMANDS: dict[str, list[list[str]]] = {
    "Darwin": [["pbcopy"]],
    "Linux": [
        ["wl-copy"],
        ["xclip", "-selection", "clipboard"],
        ["xsel", "--clipboard", "--input"],
    ],
    "Windows": [["clip"]],
}


def copy_to_clipboard(text: str) -> None:
    """Copy text to the system clipboard, raising ClipboardError on failure."""
    commands = CLIPBOARD_COMMANDS.get(platform.system(), [])
    for cmd in commands:
        try:
            subprocess.run(cmd, input=text.encode(), check=True, capture_output=True, timeout=5)
        except (OSError, subprocess.SubprocessError):
            continue
        return
    raise ClipboardError(f"no clipboard tool available on {platform.system()}")


def get_clipboard() -> Clipboard | None:
    """Clipboard capability for the hook processor, unless disabled."""
    if os.environ.get("CC_FILTER_NO_CLIPBOARD"):
        return None
    return copy_to_clipboard
