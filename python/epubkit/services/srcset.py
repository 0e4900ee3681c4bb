"""Responsive-image candidate parsing.

Parses an img srcset attribute into ordered (url, descriptor) candidates,
following the HTML "parse a srcset attribute" steps closely enough for
extraction purposes:
- Candidates are separated by commas that follow whitespace-free URLs
- A URL ending in commas terminates its candidate with no descriptors
- Descriptors are "<int>w", "<float>x" or "<int>h"; commas inside
  parentheses do not split descriptors
- A candidate with an invalid or duplicated descriptor is dropped
"""

import re
from dataclasses import dataclass

_WHITESPACE = " \t\n\r\f"
_WIDTH_RE = re.compile(r"^\d+w$")
_HEIGHT_RE = re.compile(r"^\d+h$")
_DENSITY_RE = re.compile(r"^(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?x$")


@dataclass(frozen=True)
class SrcsetCandidate:
    url: str
    width: int | None = None
    density: float | None = None


def parse_srcset(value: str) -> list[SrcsetCandidate]:
    """Parse a srcset attribute value.

    Args:
        value: Raw attribute value.

    Returns:
        Candidates in attribute order. Empty if nothing usable was found.
    """
    candidates: list[SrcsetCandidate] = []
    pos = 0
    length = len(value)

    while pos < length:
        # Skip separators
        while pos < length and (value[pos] in _WHITESPACE or value[pos] == ","):
            pos += 1
        if pos >= length:
            break

        start = pos
        while pos < length and value[pos] not in _WHITESPACE:
            pos += 1
        url = value[start:pos]

        descriptors: list[str] = []
        if url.endswith(","):
            url = url.rstrip(",")
        else:
            descriptors, pos = _collect_descriptors(value, pos)

        if not url:
            continue

        candidate = _build_candidate(url, descriptors)
        if candidate is not None:
            candidates.append(candidate)

    return candidates


def _collect_descriptors(value: str, pos: int) -> tuple[list[str], int]:
    """Collect descriptor tokens up to the candidate-ending comma."""
    descriptors: list[str] = []
    current = ""
    in_parens = False
    length = len(value)

    while pos < length:
        char = value[pos]
        pos += 1
        if in_parens:
            current += char
            if char == ")":
                in_parens = False
        elif char in _WHITESPACE:
            if current:
                descriptors.append(current)
                current = ""
        elif char == ",":
            break
        else:
            current += char
            if char == "(":
                in_parens = True

    if current:
        descriptors.append(current)
    return descriptors, pos


def _build_candidate(url: str, descriptors: list[str]) -> SrcsetCandidate | None:
    width: int | None = None
    density: float | None = None
    height: int | None = None

    for descriptor in descriptors:
        if _WIDTH_RE.match(descriptor):
            if width is not None or density is not None:
                return None
            width = int(descriptor[:-1])
            if width <= 0:
                return None
        elif _DENSITY_RE.match(descriptor):
            if width is not None or density is not None or height is not None:
                return None
            density = float(descriptor[:-1])
            if density < 0:
                return None
        elif _HEIGHT_RE.match(descriptor):
            if height is not None or density is not None:
                return None
            height = int(descriptor[:-1])
            if height <= 0:
                return None
        else:
            return None

    return SrcsetCandidate(url=url, width=width, density=density)
