from __future__ import annotations

DEFAULT_BYTES_PER_LINE = 64


def _printable(byte: int) -> str:
    return chr(byte) if 0x20 <= byte < 0x7F else "."


def render_hex(data: bytes, bytes_per_line: int = DEFAULT_BYTES_PER_LINE) -> str:
    """Offset, hex and ASCII columns; one row per *bytes_per_line* bytes."""
    if bytes_per_line <= 0:
        raise ValueError("bytes_per_line must be positive")
    offset_width = max(4, len(f"{max(len(data) - 1, 0):X}"))
    rows: list[str] = []
    for start in range(0, len(data), bytes_per_line):
        chunk = data[start : start + bytes_per_line]
        hex_column = " ".join(f"{byte:02X}" for byte in chunk)
        hex_column = hex_column.ljust(bytes_per_line * 3 - 1)
        ascii_column = "".join(_printable(byte) for byte in chunk)
        rows.append(f"{start:0{offset_width}X}  {hex_column}  {ascii_column}")
    return "\n".join(rows)
