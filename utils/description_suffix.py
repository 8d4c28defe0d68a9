"""Series-position suffixes carried at the end of transaction descriptions.

Two notations exist:
    "TV (2/10)"       installment i of total (current notation)
    "TV (Parcela 2)"  installment i without a total (legacy notation)

Only one suffix is ever recognised per description, anchored at the end of the text.
"""
import re
from dataclasses import dataclass
from typing import Optional

INSTALLMENT_SUFFIX_RE = re.compile(r"\s\((\d+)/(\d+)\)$")
LEGACY_SUFFIX_RE = re.compile(r"\s\(Parcela (\d+)\)$")


@dataclass(frozen=True)
class SeriesSuffix:
    """A parsed suffix. `total` is None for the legacy "(Parcela i)" notation."""
    number: int
    total: Optional[int]
    text: str

    @property
    def is_legacy(self) -> bool:
        return self.total is None

    def render(self) -> str:
        if self.total is None:
            return legacy_suffix(self.number)
        return installment_suffix(self.number, self.total)


def installment_suffix(number: int, total: int) -> str:
    return f" ({number}/{total})"


def legacy_suffix(number: int) -> str:
    return f" (Parcela {number})"


def parse_suffix(description: str) -> Optional[SeriesSuffix]:
    """Returns the suffix found at the end of `description`, or None."""
    if not description:
        return None
    match = INSTALLMENT_SUFFIX_RE.search(description)
    if match:
        return SeriesSuffix(number=int(match.group(1)), total=int(match.group(2)), text=match.group(0))
    match = LEGACY_SUFFIX_RE.search(description)
    if match:
        return SeriesSuffix(number=int(match.group(1)), total=None, text=match.group(0))
    return None


def current_suffix(description: str) -> str:
    """The exact suffix text present on `description` (leading space included), or ""."""
    suffix = parse_suffix(description)
    return suffix.text if suffix else ""


def strip_suffix(description: str) -> str:
    """Base description: the suffix removed and surrounding whitespace trimmed."""
    if not description:
        return ""
    suffix = parse_suffix(description)
    if suffix is None:
        return description.strip()
    return description[: -len(suffix.text)].strip()


def attach_suffix(base_description: str, suffix: str) -> str:
    return f"{base_description}{suffix}"


def reattach_suffix(new_base: str, existing_description: str) -> str:
    """Rebuilds a description from a new base, keeping the suffix of `existing_description`."""
    return attach_suffix(new_base, current_suffix(existing_description))
