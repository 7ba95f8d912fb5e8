"""
EMVCo tag-length-value records.

A payload is a flat run of records: two-digit tag, two-digit decimal length, then
exactly that many characters of value. Nested templates (26-51, 62) are kept as
opaque values.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Optional

from domain.payment.exceptions import QrisFormatException


MAX_VALUE_LENGTH = 99


@dataclass(frozen=True)
class TlvRecord:
    tag: str
    value: str

    def __post_init__(self):
        if len(self.tag) != 2 or not self.tag.isdigit():
            raise QrisFormatException(f"bad tag {self.tag!r}")
        if len(self.value) > MAX_VALUE_LENGTH:
            raise QrisFormatException(f"value of tag {self.tag} exceeds {MAX_VALUE_LENGTH} characters")

    @property
    def length(self) -> int:
        return len(self.value)

    def encode(self) -> str:
        return f"{self.tag}{self.length:02d}{self.value}"


def parse(payload: str) -> List[TlvRecord]:
    """Split `payload` into records; raises QrisFormatException on any overrun."""
    records: List[TlvRecord] = []
    pos = 0
    size = len(payload)
    while pos < size:
        header = payload[pos:pos + 4]
        if len(header) < 4:
            raise QrisFormatException(f"truncated record header at offset {pos}")
        tag, length_str = header[:2], header[2:]
        if not length_str.isdigit():
            raise QrisFormatException(f"bad length {length_str!r} for tag {tag}")
        length = int(length_str)
        start = pos + 4
        end = start + length
        if end > size:
            raise QrisFormatException(f"value of tag {tag} runs past end of payload")
        records.append(TlvRecord(tag, payload[start:end]))
        pos = end
    return records


def serialize(records: Iterable[TlvRecord]) -> str:
    return "".join(r.encode() for r in records)


def find(records: Iterable[TlvRecord], tag: str) -> Optional[TlvRecord]:
    for record in records:
        if record.tag == tag:
            return record
    return None
