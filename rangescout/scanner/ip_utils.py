"""IPv4 helpers for CIDR parsing and dotted-quad stepping."""

from __future__ import annotations

from dataclasses import dataclass
import ipaddress
import re
from typing import Iterable

_TOKEN_SPLIT = re.compile(r"[\s,;]+")
_IPV4_SPACE = 1 << 32


@dataclass(slots=True, frozen=True)
class CidrBlock:
    """IPv4 block anchored at the base address exactly as written."""

    base: str
    prefix: int

    @property
    def size(self) -> int:
        return 1 << (32 - self.prefix)

    def __str__(self) -> str:
        return f"{self.base}/{self.prefix}"


def parse_cidr(token: str) -> CidrBlock | None:
    """Parse one ``base/prefix`` token; ``None`` for anything malformed.

    A bare IPv4 address is treated as a single host (``/32``).
    """
    token = (token or "").strip()
    if not token:
        return None

    address, has_prefix, bits = token.partition("/")
    try:
        base = ipaddress.IPv4Address(address.strip())
    except ValueError:
        return None

    if not has_prefix:
        return CidrBlock(base=str(base), prefix=32)

    bits = bits.strip()
    if not (bits.isascii() and bits.isdigit()):
        return None
    prefix = int(bits)
    if prefix > 32:
        return None
    return CidrBlock(base=str(base), prefix=prefix)


def split_cidr_text(text: str) -> list[str]:
    """Split provider range text into tokens, dropping ``#`` comments."""
    tokens: list[str] = []
    for line in (text or "").splitlines():
        content = line.split("#", 1)[0]
        tokens.extend(token for token in _TOKEN_SPLIT.split(content) if token)
    return tokens


def parse_cidrs(entries: str | Iterable[str | CidrBlock] | None) -> list[CidrBlock]:
    """Parse range text or an iterable of tokens, silently skipping bad entries."""
    if not entries:
        return []
    if isinstance(entries, str):
        entries = split_cidr_text(entries)

    blocks: list[CidrBlock] = []
    for entry in entries:
        if isinstance(entry, CidrBlock):
            blocks.append(entry)
            continue
        for token in split_cidr_text(str(entry)):
            block = parse_cidr(token)
            if block is not None:
                blocks.append(block)
    return blocks


def step_address(address: str, step: int) -> str:
    """Return ``address`` advanced by ``step`` with carry across octets.

    Stepping past ``255.255.255.255`` wraps around to ``0.0.0.0``.
    """
    value = (int(ipaddress.IPv4Address(address)) + step) % _IPV4_SPACE
    return str(ipaddress.IPv4Address(value))
