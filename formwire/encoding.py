"""
Content-Transfer-Encoding transforms for multipart payloads.

Supports 7bit, 8bit (identity), base64 (unpadded) and quoted-printable.
"""

from __future__ import annotations

import base64
import binascii
import enum

QP_MAX_LINE = 76


class Encoding(enum.Enum):
    SEVEN_BIT = "7bit"
    EIGHT_BIT = "8bit"
    BASE64 = "base64"
    QUOTED_PRINTABLE = "quoted-printable"

    @classmethod
    def from_wire_name(cls, name: str) -> Encoding:
        """Look up an encoding by its header value, ignoring case."""
        key = name.strip().lower()
        for member in cls:
            if member.value == key:
                return member
        raise ValueError(f"Unknown Content-Transfer-Encoding: {name!r}")

    @property
    def wire_name(self) -> str:
        return self.value

    def to_wire_name(self) -> str:
        return self.value

    @property
    def group_size(self) -> int:
        """Raw bytes per indivisible encoding group."""
        return 3 if self is Encoding.BASE64 else 1

    def align(self, chunk_size: int) -> int:
        """Round a read size up to a whole number of encoding groups."""
        group = self.group_size
        return -(-chunk_size // group) * group

    def encode(self, data: bytes) -> bytes:
        """
        Encode a buffer for the wire.

        Args:
            data: Raw payload bytes

        Returns:
            Encoded bytes; base64 output carries no '=' padding,
            quoted-printable lines end in CRLF soft breaks
        """
        return self.encode_continued(data)[0]

    def encode_continued(self, data: bytes, column: int = 0) -> tuple[bytes, int]:
        """
        Encode a buffer that continues a quoted-printable line already
        `column` characters long.

        Returns:
            Encoded bytes and the length of their last line
        """
        if self is Encoding.BASE64:
            return base64.b64encode(data).rstrip(b"="), 0
        if self is Encoding.QUOTED_PRINTABLE:
            # Binary mode escapes CR and LF, so the only line breaks are ours.
            flat = binascii.b2a_qp(data, istext=False)
            flat = flat.replace(b"=\r\n", b"").replace(b"=\n", b"")
            return _wrap_qp(flat, column)
        return data, 0

    def encoded_length(self, size: int) -> int | None:
        """
        Exact encoded length of `size` raw bytes, or None when the output
        length depends on the content.
        """
        if self is Encoding.BASE64:
            return (4 * size + 2) // 3
        if self is Encoding.QUOTED_PRINTABLE:
            return None
        return size


def _wrap_qp(flat: bytes, column: int) -> tuple[bytes, int]:
    # RFC 2045: at most 76 characters per line, counting the trailing '='.
    limit = QP_MAX_LINE - 1
    out = bytearray()
    i = 0
    while i < len(flat):
        step = 3 if flat[i] == 0x3D else 1
        if column + step > limit:
            out += b"=\r\n"
            column = 0
        out += flat[i:i + step]
        column += step
        i += step
    return bytes(out), column
