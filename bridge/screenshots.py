"""
Screenshot persistence

Files are named <base>_<YYYY-MM-DD>_<NNNN>.png. The sequence is per calendar
day, shared by every base name, and resumes from the highest number already on
disk for that day.

Copyright (c) 2024 Browser Bridge Project
Licensed under the MIT License - see LICENSE file for details
"""

import base64
import binascii
import logging
import os
import re
from datetime import date, datetime
from typing import Callable, Dict, Optional

from .errors import MalformedResponseError

logger = logging.getLogger(__name__)

_SEQUENCE_RE = re.compile(r"_(\d{4}-\d{2}-\d{2})_(\d{4,})\.png$")
_DATA_URL_RE = re.compile(r"^data:image/[a-zA-Z0-9.+-]+;base64,")


def sanitize_filename(name: str) -> str:
    """Make `name` filesystem-safe: unsafe chars to _, collapse, trim, max 50"""
    name = re.sub(r'[<>:"/\\|?*#.\[\]=\'\x00-\x1f]', "_", name)
    name = re.sub(r"\s+", "_", name)
    name = re.sub(r"_+", "_", name)
    return name.strip("_")[:50]


def decode_image(data: str) -> bytes:
    """Decode a data URL or bare base64 payload"""
    if not isinstance(data, str) or not data:
        raise MalformedResponseError("Screenshot reply contained no image data")
    payload = _DATA_URL_RE.sub("", data, count=1)
    try:
        image = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedResponseError(f"Screenshot data is not valid base64: {e}",
                                     preview=data[:100]) from e
    if not image:
        raise MalformedResponseError("Screenshot reply contained no image data")
    return image


class ScreenshotStore:
    """Writes screenshots into `directory` with dated sequence filenames"""

    def __init__(self, directory: str, clock: Optional[Callable[[], datetime]] = None):
        self.directory = directory
        self._clock = clock or datetime.now
        self._sequence: Dict[date, int] = {}

    def _highest_on_disk(self, day: date) -> int:
        if not os.path.isdir(self.directory):
            return 0
        stamp = day.isoformat()
        highest = 0
        for filename in os.listdir(self.directory):
            match = _SEQUENCE_RE.search(filename)
            if match and match.group(1) == stamp:
                highest = max(highest, int(match.group(2)))
        return highest

    def next_filename(self, selector: Optional[str] = None, full_page: bool = False) -> str:
        day = self._clock().date()
        if day not in self._sequence:
            # A new day starts a fresh sequence
            self._sequence = {day: self._highest_on_disk(day)}
        self._sequence[day] += 1

        base = "screenshot"
        if selector:
            fragment = sanitize_filename(selector)
            if fragment:
                base += f"_{fragment}"
        if full_page:
            base += "_fullpage"
        return f"{base}_{day.isoformat()}_{self._sequence[day]:04d}.png"

    def save(self, data: str, selector: Optional[str] = None,
             full_page: bool = False) -> Dict[str, str]:
        image = decode_image(data)
        os.makedirs(self.directory, exist_ok=True)
        filename = self.next_filename(selector, full_page)
        path = os.path.abspath(os.path.join(self.directory, filename))
        with open(path, "wb") as f:
            f.write(image)
        logger.info(f"Screenshot saved to '{path}' ({len(image)} bytes)")
        return {"path": path, "filename": filename, "size": len(image)}
