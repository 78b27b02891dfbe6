"""
Handles parsing of port tokens and target lists.
"""
from __future__ import annotations
import logging
import re
import sys
from typing import Iterable, List, Optional, TextIO, Tuple

logger = logging.getLogger(__name__)

_PORT_TOKEN = re.compile(r'^\d+$')
_SEPARATORS = re.compile(r'[,\s;]+')


def parse_ports(tokens: Iterable[object]) -> Tuple[int, ...]:
    """
    Builds the ordered port set from free-form tokens.

    Accepts either a single string ("80, 443") or an iterable of tokens.
    Anything that is not all digits or is outside 1-65535 is dropped; the
    first occurrence of each port decides its position.
    """
    if isinstance(tokens, str):
        tokens = _SEPARATORS.split(tokens)

    ports: List[int] = []
    seen = set()
    for token in tokens:
        text = str(token).strip()
        if not text:
            continue
        if not _PORT_TOKEN.match(text):
            logger.debug("Dropping non-numeric port token %r", text)
            continue
        port = int(text)
        if not 0 < port < 65536:
            logger.debug("Dropping out-of-range port %d", port)
            continue
        if port in seen:
            continue
        seen.add(port)
        ports.append(port)
    return tuple(ports)


class TargetParser:
    """Turns free text into an ordered list of target identifiers."""

    def __init__(self, comment_prefix: str = '#'):
        self.comment_prefix = comment_prefix

    def parse(self, text: str) -> List[str]:
        """
        Splits text on newlines, commas and whitespace.

        Blank entries and comments are skipped. Duplicates are kept; each one
        is probed on its own.
        """
        targets: List[str] = []
        for line in text.splitlines():
            line = self._strip_comment(line)
            targets.extend(t for t in _SEPARATORS.split(line) if t)
        return targets

    def parse_stream(self, stream: TextIO) -> List[str]:
        return self.parse(stream.read())

    def from_file(self, path: str) -> List[str]:
        """Reads targets from a file, or from standard input when path is '-'."""
        if path == '-':
            return self.parse_stream(sys.stdin)
        with open(path, 'r', encoding='utf-8') as f:
            return self.parse_stream(f)

    def collect(self, positional: Optional[Iterable[str]] = None, targets_file: Optional[str] = None) -> List[str]:
        """Combines command-line targets and file targets, in that order."""
        targets: List[str] = []
        for item in positional or []:
            targets.extend(self.parse(item))
        if targets_file:
            targets.extend(self.from_file(targets_file))
        return targets

    def _strip_comment(self, line: str) -> str:
        if self.comment_prefix and self.comment_prefix in line:
            line = line.split(self.comment_prefix, 1)[0]
        return line.strip()
