"""Buffer decoders.

A decoder turns the opaque diagnostic or payload bytes of a trial into
operator text. Decoders are pure: the same bytes always give the same text,
and an absent buffer gives an empty string. Both buffers use the same
``decode`` protocol, so any decoder can be bound to either one.
"""

from __future__ import annotations

from typing import Protocol

from trialbench.models import CollaboratorRef, ConfigError
from trialbench.transport import load_factory

SENSE_KEYS = (
    "No sense",
    "Recovered error",
    "Not ready",
    "Medium error",
    "Hardware error",
    "Illegal request",
    "Unit attention",
    "Data protect",
    "Blank check",
    "Vendor specific",
    "Copy aborted",
    "Aborted command",
    "Equal",
    "Volume overflow",
    "Miscompare",
    "Completed",
)

# Additional sense code/qualifier pairs worth naming; everything else is
# printed numerically.
_ASC_DESCRIPTIONS: dict[tuple[int, int], str] = {
    (0x00, 0x00): "No additional sense information",
    (0x04, 0x00): "Logical unit not ready, cause not reportable",
    (0x04, 0x01): "Logical unit is in process of becoming ready",
    (0x11, 0x00): "Unrecovered read error",
    (0x20, 0x00): "Invalid command operation code",
    (0x21, 0x00): "Logical block address out of range",
    (0x24, 0x00): "Invalid field in CDB",
    (0x25, 0x00): "Logical unit not supported",
    (0x28, 0x00): "Not ready to ready change, medium may have changed",
    (0x29, 0x00): "Power on, reset, or bus device reset occurred",
    (0x3A, 0x00): "Medium not present",
}


class DiagnosticDecoder(Protocol):
    def decode(self, diagnostic: bytes | None) -> str: ...


def describe_asc(asc: int, ascq: int) -> str:
    known = _ASC_DESCRIPTIONS.get((asc, ascq))
    if known is not None:
        return known
    return f"ASC {asc:02X}h ASCQ {ascq:02X}h"


def _decode_standard(sense: bytes) -> str:
    error_class = (sense[0] & 0x70) >> 4
    error_type = sense[0] & 0x0F
    if sense[0] & 0x80:
        lba = ((sense[1] & 0x1F) << 16) | (sense[2] << 8) | sense[3]
        return f"Error class {error_class} type {error_type} happened on block {lba}\n"
    return f"Error class {error_class} type {error_type}\n"


def _decode_fixed(sense: bytes) -> str:
    if len(sense) < 8:
        return "Fixed format sense data is truncated\n"
    lines = [f"SCSI SENSE: {SENSE_KEYS[sense[2] & 0x0F]}"]
    if sense[1]:
        lines.append(f"On segment {sense[1]}")
    if sense[2] & 0x80:
        lines.append("Filemark or setmark found")
    if sense[2] & 0x40:
        lines.append("End-of-medium/partition found")
    if sense[2] & 0x20:
        lines.append("Incorrect length indicator")
    if sense[0] & 0x80:
        lines.append(f"On logical block {int.from_bytes(sense[3:7], 'big')}")
    if sense[7] >= 6 and len(sense) >= 14:
        lines.append(describe_asc(sense[12], sense[13]))
    return "\n".join(lines) + "\n"


def _decode_descriptor(sense: bytes) -> str:
    if len(sense) < 8:
        return "Descriptor format sense data is truncated\n"
    lines = [
        f"SCSI SENSE: {SENSE_KEYS[sense[1] & 0x0F]}",
        describe_asc(sense[2], sense[3]),
    ]
    offset = 8
    while offset + 1 < len(sense):
        desc_type = sense[offset]
        desc_len = sense[offset + 1] + 2
        descriptor = sense[offset : offset + desc_len]
        if desc_type == 0x00 and len(descriptor) == 12:
            lines.append(f"On logical block {int.from_bytes(descriptor[4:12], 'big')}")
        offset += desc_len
    return "\n".join(lines) + "\n"


class SenseDecoder:
    """Decodes standard, fixed and descriptor format sense data."""

    name = "sense"

    def decode(self, diagnostic: bytes | None) -> str:
        if diagnostic is None:
            return ""
        if len(diagnostic) < 4:
            return f"Unrecognized sense data ({len(diagnostic)} bytes)\n"
        if diagnostic[0] & 0x70 != 0x70:
            if len(diagnostic) != 4:
                return f"Unrecognized sense data ({len(diagnostic)} bytes)\n"
            return _decode_standard(diagnostic)
        response_format = diagnostic[0] & 0x0F
        if response_format in (0, 1):
            return _decode_fixed(diagnostic)
        if response_format in (2, 3):
            return _decode_descriptor(diagnostic)
        return f"Unknown sense response code {diagnostic[0]:02X}h\n"


_PERIPHERAL_TYPES = {
    0x00: "Direct-access device",
    0x01: "Sequential-access device",
    0x02: "Printer device",
    0x03: "Processor device",
    0x04: "Write-once device",
    0x05: "CD/DVD device",
    0x07: "Optical memory device",
    0x08: "Medium changer device",
    0x0C: "Storage array controller device",
    0x0D: "Enclosure services device",
    0x0E: "Simplified direct-access device",
    0x0F: "Optical card reader/writer device",
    0x11: "Object-based storage device",
    0x1F: "Unknown or no device type",
}


def _ascii_field(data: bytes) -> str:
    return data.decode("ascii", errors="replace").strip()


class InquiryDecoder:
    """Decodes the standard INQUIRY data a device returns as its payload."""

    name = "inquiry"

    def decode(self, payload: bytes | None) -> str:
        if payload is None:
            return ""
        if len(payload) < 5:
            return f"INQUIRY data is truncated ({len(payload)} bytes)\n"
        device_type = payload[0] & 0x1F
        qualifier = (payload[0] & 0xE0) >> 5
        lines = [
            _PERIPHERAL_TYPES.get(device_type, f"Peripheral device type {device_type:02X}h"),
        ]
        if qualifier:
            lines.append(f"Peripheral qualifier {qualifier}")
        if payload[1] & 0x80:
            lines.append("Medium is removable")
        lines.append(f"Version {payload[2]:02X}h, response data format {payload[3] & 0x0F}")
        if len(payload) >= 16:
            lines.append(f"Vendor: {_ascii_field(payload[8:16])}")
        if len(payload) >= 32:
            lines.append(f"Product: {_ascii_field(payload[16:32])}")
        if len(payload) >= 36:
            lines.append(f"Revision: {_ascii_field(payload[32:36])}")
        return "\n".join(lines) + "\n"


_BUILTIN_DECODERS = {
    SenseDecoder.name: SenseDecoder,
    InquiryDecoder.name: InquiryDecoder,
}


def build_decoder(ref: CollaboratorRef) -> DiagnosticDecoder:
    builtin = _BUILTIN_DECODERS.get(ref.kind)
    if builtin is not None:
        return builtin()
    decoder = load_factory(ref.kind)(**ref.options)
    if not callable(getattr(decoder, "decode", None)):
        raise ConfigError(f"decoder {ref.kind!r} has no decode() method")
    return decoder
