"""
CRC-16/CCITT-FALSE as used by EMVCo merchant-presented QR codes.
"""
from __future__ import annotations

POLYNOMIAL = 0x1021
INITIAL = 0xFFFF


def checksum16(data: str) -> str:
    """
    Return the checksum of `data` as 4 upper-case hex digits.

    Each character contributes its code point; QR payloads are ASCII so this is
    the same as hashing the encoded bytes.
    """
    crc = INITIAL
    for ch in data:
        crc ^= (ord(ch) & 0xFF) << 8
        for _ in range(8):
            if crc & 0x8000:
                crc = ((crc << 1) ^ POLYNOMIAL) & 0xFFFF
            else:
                crc = (crc << 1) & 0xFFFF
    return f"{crc:04X}"
