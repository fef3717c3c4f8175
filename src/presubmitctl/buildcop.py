#!/usr/bin/env python3
"""Look up the current build cop from the on-call rotation file.

The rotation file is XML:

    <rotation>
      <shift>
        <primary>alice</primary>
        <secondary>bob</secondary>
        <startDate>Nov 5, 2014 12:00:00PM</startDate>
      </shift>
      ...
    </rotation>
"""

import logging
import xml.etree.ElementTree as ET
from datetime import datetime

logger = logging.getLogger(__name__)

START_DATE_FORMAT = "%b %d, %Y %I:%M:%S%p"


def build_cop(rotation_path: str, now: datetime | None = None) -> str:
    """Return the primary of the latest shift started at or before now.

    Raises OSError, ValueError or ET.ParseError when the rotation cannot
    be read, and LookupError when no shift has started yet.
    """
    now = now or datetime.now()
    root = ET.parse(rotation_path).getroot()

    current, current_start = None, None
    for shift in root.findall("shift"):
        start = datetime.strptime(
            (shift.findtext("startDate") or "").strip(), START_DATE_FORMAT,
        )
        if start > now:
            continue
        if current_start is None or start > current_start:
            current, current_start = shift, start

    if current is None:
        raise LookupError(f"no build cop shift has started in {rotation_path}")
    return (current.findtext("primary") or "").strip()


def current_build_cop(rotation_path: str | None, now: datetime | None = None) -> str:
    """Return the current build cop, or "" if it cannot be determined."""
    if not rotation_path:
        return ""
    try:
        return build_cop(rotation_path, now)
    except (OSError, ValueError, LookupError, ET.ParseError) as e:
        logger.warning("Could not determine build cop: %s", e)
        return ""
