"""Statement extraction from XML declaration files.

A declaration is ``<DECLAR>`` with a ``<DECLARHEAD>`` (taxpayer code, form
code parts, reporting period) and a ``<DECLARBODY>`` whose ``R####G#``
elements hold the line items.  The extracted raw record is flat:

    {"TIN": "12345678", "Y": 2024, "M": 12, "FC": "S0100115",
     "R1300G4": 1500.0, "R2000G3": 980.5, ...}

Any callable ``path -> dict`` satisfies the Extractor protocol, so the batch
processor can be driven by other formats or by test doubles.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Protocol

from lxml import etree

from fin_recon.errors import ExtractionError

log = logging.getLogger(__name__)

LINE_ITEM = re.compile(r"^R\d{3,4}G\d+$")

_PARSER = etree.XMLParser(resolve_entities=False, no_network=True, huge_tree=False)


class Extractor(Protocol):
    def __call__(self, path: Path) -> dict[str, Any] | None: ...


def _text(element: etree._Element | None) -> str | None:
    if element is None or element.text is None:
        return None
    text = element.text.strip()
    return text or None


def _number(text: str) -> float | str:
    """Line-item text as a float; statements sometimes use a decimal comma."""
    cleaned = text.replace("\u00a0", "").replace(" ", "").replace(",", ".")
    try:
        return float(cleaned)
    except ValueError:
        return text


def _int_or_none(text: str | None) -> int | None:
    if text is None:
        return None
    try:
        return int(text)
    except ValueError:
        return None


def _form_code(head: etree._Element) -> str | None:
    doc = _text(head.find("C_DOC"))
    sub = _text(head.find("C_DOC_SUB"))
    ver = _text(head.find("C_DOC_VER"))
    if not (doc and sub and ver):
        return None
    return f"{doc}{sub}{ver.zfill(2)}"


def extract_declaration(path: Path | str) -> dict[str, Any]:
    """Parse one declaration file into a raw statement record."""
    path = Path(path)
    try:
        tree = etree.parse(str(path), _PARSER)
    except (OSError, etree.XMLSyntaxError) as exc:
        raise ExtractionError(f"Cannot read {path.name}: {exc}") from exc

    root = tree.getroot()
    head = root.find("DECLARHEAD")
    body = root.find("DECLARBODY")
    if head is None or body is None:
        raise ExtractionError(f"{path.name} is not a declaration (missing head or body)")

    tin = _text(head.find("TIN"))
    if tin is None:
        raise ExtractionError(f"{path.name} has no TIN")

    record: dict[str, Any] = {
        "TIN": tin,
        "Y": _int_or_none(_text(head.find("PERIOD_YEAR"))),
        "M": _int_or_none(_text(head.find("PERIOD_MONTH"))),
        "FC": _form_code(head),
    }

    for element in body:
        if not isinstance(element.tag, str) or not LINE_ITEM.match(element.tag):
            continue
        text = _text(element)
        if text is None:
            continue
        record[element.tag] = _number(text)

    log.debug("Extracted %d line items from %s", len(record) - 4, path.name)
    return record
