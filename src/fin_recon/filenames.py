"""Statement filename convention.

Source files are named ``<entity>_<anything>_<YYYY-MM-DD> <HH_MM_SS>.xml``,
where ``<entity>`` is an 8-9 digit code, the two characters at positions
10-11 carry the region code and paired filings embed a form code such as
``S0100115`` somewhere after the first underscore.
"""

from __future__ import annotations

import logging
import re
from datetime import date

from fin_recon.models import SourceFile

log = logging.getLogger(__name__)

FILE_PATTERN = re.compile(
    r"^(\d{8,9})_(?:.*?(S0100\d{3}))?.*?_(\d{4}-\d{2}-\d{2}) \d{2}_\d{2}_\d{2}\.xml$",
    re.IGNORECASE,
)

# Zero-based slice of the region code inside a filename
REGION_SLICE = slice(9, 11)


def region_code(filename: str) -> str:
    return filename[REGION_SLICE]


def is_region_allowed(filename: str, allowed_regions: frozenset[str] | set[str]) -> bool:
    """True when the filename's region code is in *allowed_regions*."""
    return region_code(filename) in allowed_regions


def parse_filename(
    filename: str,
    require_form: bool = False,
    folder: str | None = None,
) -> SourceFile | None:
    """Parse *filename* into a SourceFile, or None when it does not qualify.

    A name qualifies when it matches FILE_PATTERN, carries a real calendar
    date and, if *require_form* is set, contains a form code.
    """
    match = FILE_PATTERN.match(filename)
    if not match:
        log.debug("Filename does not match convention: %s", filename)
        return None

    entity_code, form_code, raw_date = match.groups()
    if require_form and not form_code:
        log.debug("Form code required but missing: %s", filename)
        return None

    try:
        as_of = date.fromisoformat(raw_date)
    except ValueError:
        log.debug("Invalid statement date %s in %s", raw_date, filename)
        return None

    return SourceFile(
        name=filename,
        entity_code=entity_code,
        form_code=form_code.upper() if form_code else None,
        as_of=as_of,
        folder=folder,
    )
