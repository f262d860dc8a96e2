"""
wipebridge.parser
-----------------

Incremental extraction of JSON objects from the child's stdout.

Output arrives in arbitrary chunks that do not line up with object
boundaries, and the binary may pretty-print an object across several lines.
``EventParser.feed(chunk)`` appends to a buffer, scans it with a
string-aware brace counter and returns every event completed by this chunk.

Notes:
 - Braces inside quoted strings (including escaped quotes) do not count.
 - Text outside a top-level object is discarded.
 - A span that fails to decode or classify is logged and dropped; it never
   aborts the stream.
 - Bytes are decoded with an incremental UTF-8 decoder so that a multibyte
   character split across chunks is reassembled.
"""

from __future__ import annotations

import codecs
import json
import logging
from typing import Union

from .events import WipeEvent, classify

logger = logging.getLogger(__name__)
logger.addHandler(logging.NullHandler())


class EventParser:
    """Stateful parser bound to one process lifetime."""

    def __init__(self, encoding: str = "utf-8"):
        self._encoding = encoding
        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._buffer = ""
        # scanner state, carried between feeds
        self._pos = 0
        self._depth = 0
        self._start = -1
        self._in_string = False
        self._escape = False

    @property
    def pending(self) -> str:
        """Text buffered but not yet part of a complete object."""
        return self._buffer

    def reset(self) -> None:
        self._decoder.reset()
        self._buffer = ""
        self._pos = 0
        self._depth = 0
        self._start = -1
        self._in_string = False
        self._escape = False

    def feed(self, chunk: Union[bytes, str]) -> list[WipeEvent]:
        if isinstance(chunk, (bytes, bytearray)):
            text = self._decoder.decode(bytes(chunk))
        else:
            text = chunk
        if not text:
            return []
        self._buffer += text
        return self._scan()

    def flush(self) -> list[WipeEvent]:
        """Drain the decoder at end of stream. Incomplete objects are dropped."""
        tail = self._decoder.decode(b"", final=True)
        events = []
        if tail:
            self._buffer += tail
            events = self._scan()
        if self._buffer.strip():
            logger.warning("Discarding incomplete JSON at end of stream: %.100s", self._buffer.strip())
        self.reset()
        return events

    # --- Internals -------------------------------------------------------
    def _scan(self) -> list[WipeEvent]:
        events: list[WipeEvent] = []
        buf = self._buffer
        i = self._pos
        while i < len(buf):
            ch = buf[i]
            if self._in_string:
                if self._escape:
                    self._escape = False
                elif ch == "\\":
                    self._escape = True
                elif ch == '"':
                    self._in_string = False
            elif ch == '"':
                if self._depth > 0:
                    self._in_string = True
            elif ch == "{":
                if self._depth == 0:
                    self._start = i
                self._depth += 1
            elif ch == "}" and self._depth > 0:
                self._depth -= 1
                if self._depth == 0:
                    event = self._decode(buf[self._start:i + 1])
                    if event is not None:
                        events.append(event)
                    buf = buf[i + 1:]
                    self._start = -1
                    i = 0
                    continue
            i += 1

        if self._depth == 0:
            # nothing open: whatever is left is noise between objects
            if buf.strip():
                logger.debug("Skipping non-JSON output: %.100s", buf.strip())
            buf = ""
            i = 0
        elif self._start > 0:
            buf = buf[self._start:]
            i -= self._start
            self._start = 0
        self._buffer = buf
        self._pos = i
        return events

    @staticmethod
    def _decode(span: str):
        try:
            payload = json.loads(span)
            event = classify(payload)
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            logger.warning("Failed to parse JSON event %.100s...: %s", span, e)
            return None
        logger.debug("Parsed event %s", getattr(event, "type", type(event).__name__))
        return event


def parse_all(output: Union[bytes, str]) -> list[WipeEvent]:
    """Parse a complete captured output in one pass."""
    parser = EventParser()
    events = parser.feed(output)
    events.extend(parser.flush())
    return events
