"""Cartridge memory (MAM) attributes of an LTO tape and their human-readable report."""

from __future__ import annotations

import math
import struct
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import IntEnum
from typing import Iterator

READ_ATTRIBUTE_REPLY_LENGTH = 512
WRITE_ATTRIBUTE_CDB_LENGTH = 16

# A READ ATTRIBUTE reply holds a 4-byte length header and a 5-byte attribute
# header before the value of the first attribute.
VALUE_OFFSET = 9

_UINT64_MASK = (1 << 64) - 1
MOCK_ERROR = "err"


class DataType(IntEnum):
    """Encoding of an attribute value."""

    BINARY = 0x00
    ASCII = 0x01


@dataclass
class Attribute:
    """One medium auxiliary memory attribute and its last read value."""

    name: str
    command: int
    length: int
    data_type: DataType
    mock: int | str = 0
    no_trim: bool = False
    is_valid: bool = False
    data_int: int = 0
    data_str: str = ""

    def decode(self, payload: bytes) -> int | str:
        """Store the value found in a READ ATTRIBUTE reply and return it."""
        self.is_valid = False
        end = VALUE_OFFSET + self.length
        if len(payload) < end:
            raise ValueError(
                f"reply of {len(payload)} bytes is too short for attribute "
                f"0x{self.command:04x} ({self.length} bytes)"
            )
        raw = bytes(payload[VALUE_OFFSET:end])
        if self.data_type is DataType.BINARY:
            self.data_int = int.from_bytes(raw, "big") & _UINT64_MASK
            self.is_valid = True
            return self.data_int
        if self.data_type is DataType.ASCII:
            text = raw.decode("latin-1")
            if not self.no_trim:
                text = text.rstrip(" ")
            self.data_str = text
            self.is_valid = True
            return self.data_str
        raise ValueError("Invalid type")

    def apply_mock(self) -> int | str:
        """Fill the attribute with its simulated value, as a fake drive would."""
        if self.mock == MOCK_ERROR:
            self.invalidate()
            raise RuntimeError("mocked error")
        if self.data_type is DataType.BINARY:
            self.data_int = self.mock if isinstance(self.mock, int) else 0
            self.is_valid = True
            return self.data_int
        if self.data_type is DataType.ASCII:
            self.data_str = self.mock if isinstance(self.mock, str) else ""
            self.is_valid = True
            return self.data_str
        raise ValueError("Invalid type")

    def invalidate(self) -> None:
        """Mark the attribute as not read."""
        self.is_valid = False

    def to_dict(self) -> dict[str, object]:
        """Return the attribute as a plain mapping for debug output."""
        return {
            "IsValid": self.is_valid,
            "Name": self.name,
            "Command": self.command,
            "Len": self.length,
            "DataType": int(self.data_type),
            "DataInt": self.data_int,
            "DataStr": self.data_str,
            "NoTrim": self.no_trim,
            "MockInt": self.mock if isinstance(self.mock, int) else 0,
            "MockStr": self.mock if isinstance(self.mock, str) else "",
        }


@dataclass(frozen=True)
class FormatSpecs:
    """Nominal characteristics of an LTO generation."""

    native_capacity: int
    compressed_capacity: int
    native_speed: int
    compressed_speed: int
    full_tape_minutes: int
    compress_factor: str
    can_worm: bool
    can_encrypt: bool
    partitions: int
    bands_per_tape: int
    wraps_per_band: int
    tracks_per_wrap: int

    @property
    def total_tracks(self) -> int:
        return self.bands_per_tape * self.wraps_per_band * self.tracks_per_wrap

    @property
    def passes(self) -> int:
        """Number of end-to-end passes needed to fill the tape."""
        return self.bands_per_tape * self.wraps_per_band

    @property
    def seconds_per_pass(self) -> float:
        return _ratio(self.full_tape_minutes * 60.0, self.passes)


_DENSITIES: dict[int, tuple[str, FormatSpecs]] = {
    0x40: ("LTO-1", FormatSpecs(100, 200, 20, 40, 60 + 23, "2:1", False, False, 1, 4, 12, 8)),
    0x42: ("LTO-2", FormatSpecs(200, 400, 40, 80, 60 + 23, "2:1", False, False, 1, 4, 16, 8)),
    0x44: ("LTO-3", FormatSpecs(400, 800, 80, 160, 60 + 23, "2:1", True, False, 1, 4, 11, 16)),
    0x46: ("LTO-4", FormatSpecs(800, 1600, 120, 240, 60 + 51, "2:1", True, True, 1, 4, 14, 16)),
    0x58: ("LTO-5", FormatSpecs(1500, 3000, 140, 280, 60 * 3 + 10, "2:1", True, True, 2, 4, 20, 16)),
    0x5A: ("LTO-6", FormatSpecs(2500, 6250, 160, 400, 60 * 4 + 20, "2.5:1", True, True, 4, 4, 34, 16)),
    0x5C: ("LTO-7", FormatSpecs(6000, 15000, 300, 750, 60 * 5 + 33, "2.5:1", True, True, 4, 4, 28, 32)),
    0x5D: ("LTO-M8", FormatSpecs(9000, 22500, 300, 750, 60 * 8 + 20, "2.5:1", False, True, 4, 4, 42, 32)),
    0x5E: ("LTO-8", FormatSpecs(12000, 30000, 360, 900, 60 * 9 + 16, "2.5:1", True, True, 4, 4, 52, 32)),
    # LTO-9 physical layout is not known yet.
    0x60: ("LTO-9", FormatSpecs(18000, 45000, 400, 1000, 60 * 12 + 30, "2.5:1", True, True, 4, 0, 0, 0)),
}

_CARTRIDGE_TYPES = {
    0x00: "Data cartridge",
    0x01: "Cleaning cartridge",
    0x80: "WORM (Write-once) cartridge",
}


def minutes_to_human(minutes: int) -> str:
    """Format a duration given in minutes, e.g. ``45 min`` or ``1h23``."""
    if minutes < 60:
        return f"{minutes} min"
    hours, rest = divmod(minutes, 60)
    return f"{hours}h{rest}"


def density_info(code: int) -> tuple[str, FormatSpecs | None]:
    """Return the generation name and specs for a density code."""
    return _DENSITIES.get(code, ("Unknown", None))


def _ratio(numerator: float, denominator: float) -> float:
    if denominator == 0:
        if numerator == 0:
            return math.nan
        return math.copysign(math.inf, numerator)
    return numerator / denominator


def _fmt(value: float, precision: int) -> str:
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    return f"{value:.{precision}f}"


def _float32(value: float) -> float:
    return struct.unpack("f", struct.pack("f", value))[0]


_TABLE: tuple[tuple[str, str, int, int, DataType, int | str], ...] = (
    ("part_cap_remain", "Remaining capacity in partition (MiB)", 0x0000, 8, DataType.BINARY, 198423),
    ("part_cap_max", "Maximum capacity in partition (MiB)", 0x0001, 8, DataType.BINARY, 200448),
    ("tape_alert_flags", "Tape alert flags", 0x0002, 8, DataType.BINARY, 0),
    ("load_count", "Load count", 0x0003, 8, DataType.BINARY, 42),
    ("mam_space_remaining", "MAM space remaining (bytes)", 0x0004, 8, DataType.BINARY, 850),
    ("assigning_organization", "Assigning organization", 0x0005, 8, DataType.ASCII, "LTO-FAKE"),
    ("formatted_density_code", "Formatted density code", 0x0006, 1, DataType.BINARY, 66),
    ("initialization_count", "Initialization count", 0x0007, 2, DataType.BINARY, MOCK_ERROR),
    ("identifier", "Identifier (deprecated)", 0x0008, 32, DataType.ASCII, MOCK_ERROR),
    ("volume_change_reference", "Volume change reference", 0x0009, 4, DataType.BINARY, MOCK_ERROR),
    ("device_at_load_n0", "Device Vendor/Serial at current load", 0x020A, 40, DataType.ASCII,
     "FAKEVENDMODEL012345678901234567890123456"),
    ("device_at_load_n1", "Device Vendor/Serial at load N-1", 0x020B, 40, DataType.ASCII,
     "FAKEVEND   MODEL12345"),
    ("device_at_load_n2", "Device Vendor/Serial at load N-2", 0x020C, 40, DataType.ASCII,
     "ACMEINC " + "\x00" * 10),
    ("device_at_load_n3", "Device Vendor/Serial at load N-3", 0x020D, 40, DataType.ASCII,
     "FAKEVEND   MODEL34567"),
    ("total_written", "Total MiB written", 0x0220, 8, DataType.BINARY, 17476),
    ("total_read", "Total MiB read", 0x0221, 8, DataType.BINARY, 15827),
    ("total_written_session", "Total MiB written in current load", 0x0222, 8, DataType.BINARY, 0),
    ("total_read_session", "Total MiB Read in current load", 0x0223, 8, DataType.BINARY, 139),
    ("logical_pos_first_encrypted", "Logical pos. of 1st encrypted block", 0x0224, 8,
     DataType.BINARY, MOCK_ERROR),
    ("logical_pos_first_unencrypted",
     "Logical pos. of 1st unencrypted block after 1st encrypted block", 0x0225, 8,
     DataType.BINARY, MOCK_ERROR),
    ("usage_history", "Medium Usage History", 0x0340, 90, DataType.BINARY, MOCK_ERROR),
    ("part_usage_history", "Partition Usage History", 0x0341, 90, DataType.BINARY, MOCK_ERROR),
    ("manufacturer", "Manufacturer", 0x0400, 8, DataType.ASCII, "FAKMANUF"),
    ("serial_no", "Serial No", 0x0401, 32, DataType.ASCII, "123456789"),
    ("length", "Tape length", 0x0402, 4, DataType.BINARY, 999),
    ("width", "Tape width", 0x0403, 4, DataType.BINARY, 111),
    ("assigning_org", "Assigning Organization", 0x0404, 8, DataType.ASCII, "LTO-FAKE"),
    ("medium_density", "Medium density code", 0x0405, 1, DataType.BINARY, 0x42),
    ("manufacture_date", "Manufacture Date", 0x0406, 8, DataType.ASCII, "20191231"),
    ("mam_capacity", "MAM Capacity", 0x0407, 8, DataType.BINARY, 4096),
    ("cartridge_type", "Type", 0x0408, 1, DataType.BINARY, 1),
    ("type_information", "Type Information", 0x0409, 2, DataType.BINARY, 50),
    ("user_text", "User Medium Text Label", 0x0803, 160, DataType.ASCII, "User Label"),
    ("date_time_last_written", "Date and Time Last Written", 0x0804, 12, DataType.ASCII, MOCK_ERROR),
    ("text_localization_id", "Text Localization Identifier", 0x0805, 1, DataType.BINARY, MOCK_ERROR),
    ("barcode", "Barcode", 0x0806, 12, DataType.ASCII, MOCK_ERROR),
    ("owning_host_textual_name", "Owning Host Textual Name", 0x0807, 80, DataType.ASCII, MOCK_ERROR),
    ("media_pool", "Media Pool", 0x0808, 160, DataType.ASCII, MOCK_ERROR),
    ("application_format_version", "Application Format Version", 0x080B, 16, DataType.ASCII,
     MOCK_ERROR),
    ("medium_globally_uniq_id", "Medium Globally Unique Identifier", 0x0820, 36, DataType.ASCII,
     MOCK_ERROR),
    ("media_pool_globally_uniq_id", "Media Pool Globally Unique Identifier", 0x0821, 36,
     DataType.ASCII, MOCK_ERROR),
)


@dataclass
class CartridgeMemory:
    """The set of cartridge memory attributes this tool knows how to read."""

    _attributes: dict[str, Attribute] = field(init=False, repr=False)

    def __init__(self) -> None:
        self._attributes = {
            key: Attribute(name, command, length, data_type, mock)
            for key, name, command, length, data_type, mock in _TABLE
        }
        for key, attribute in self._attributes.items():
            setattr(self, key, attribute)

    def __iter__(self) -> Iterator[Attribute]:
        return iter(self._attributes.values())

    def __len__(self) -> int:
        return len(self._attributes)

    def _years_since(self, made: date, today: date | datetime | None) -> float:
        if today is None:
            today = datetime.now(timezone.utc)
        if isinstance(today, datetime):
            start = datetime(made.year, made.month, made.day, tzinfo=today.tzinfo or None)
            if today.tzinfo is None:
                start = start.replace(tzinfo=None)
            return (today - start).total_seconds() / 86400.0 / 365.0
        return (today - made).days / 365.0

    def _medium_lines(self, today: date | datetime | None) -> tuple[list[str], FormatSpecs | None]:
        out = ["Medium information:\n"]
        kind = self._attributes["cartridge_type"]
        if kind.is_valid:
            label = _CARTRIDGE_TYPES.get(kind.data_int, "Unknown")
            info = self._attributes["type_information"]
            if kind.data_int == 0x01 and info.is_valid:
                label = f"{label} ({info.data_int} cycles max)"
            out.append(f"  Cartridge Type: 0x{kind.data_int:02x} - {label}\n")

        specs = None
        density = self._attributes["medium_density"]
        if density.is_valid:
            name, specs = density_info(density.data_int)
            out.append(f"  Medium format : 0x{density.data_int:02x} - {name}\n")
            formatted = self._attributes["formatted_density_code"].data_int
            out.append(f"  Formatted as  : 0x{formatted:02x} - {density_info(formatted)[0]}\n")

        for key, label in (
            ("assigning_org", "Assign. Org.  "),
            ("manufacturer", "Manufacturer  "),
            ("serial_no", "Serial No     "),
            ("barcode", "Barcode No    "),
        ):
            attribute = self._attributes[key]
            if attribute.is_valid:
                out.append(f"  {label}: {attribute.data_str}\n")

        made = self._attributes["manufacture_date"]
        if made.is_valid:
            text = made.data_str
            if len(text) == 8:
                shown = f"{text[0:4]}-{text[4:6]}-{text[6:8]}"
                try:
                    if not (text.isascii() and text.isdigit()):
                        raise ValueError(text)
                    parsed = datetime.strptime(text, "%Y%m%d").date()
                except ValueError:
                    out.append(f"  Manuf. Date   : {shown}\n")
                else:
                    years = self._years_since(parsed, today)
                    out.append(f"  Manuf. Date   : {shown} (roughly {years:.1f} years ago)\n")
            else:
                out.append(f"  Manuf. Date   : {text}\n")

        length = self._attributes["length"]
        if length.is_valid:
            out.append(f"  Tape length   : {length.data_int} meters\n")
        width = self._attributes["width"]
        if width.is_valid:
            out.append(f"  Tape width    : {_float32(width.data_int) / 10:.1f} mm\n")
        capacity = self._attributes["mam_capacity"]
        if capacity.is_valid:
            remaining = self._attributes["mam_space_remaining"]
            if remaining.is_valid:
                out.append(
                    f"  MAM Capacity  : {capacity.data_int} bytes "
                    f"({remaining.data_int} bytes remaining)\n"
                )
            else:
                out.append(f"  MAM Capacity  : {capacity.data_int} bytes\n")
        return out, specs

    @staticmethod
    def _specs_lines(specs: FormatSpecs) -> list[str]:
        return [
            "Format specs:\n",
            f"   Capacity  : {specs.native_capacity:5d} GB native   - "
            f"{specs.compressed_capacity:5d} GB compressed with a {specs.compress_factor} ratio\n",
            f"   R/W Speed : {specs.native_speed:5d} MB/s native - "
            f"{specs.compressed_speed:5d} MB/s compressed\n",
            f"   Partitions: {specs.partitions:5d} max partitions supported\n",
            f"   Phy. specs: {specs.bands_per_tape} bands/tape, {specs.wraps_per_band} wraps/band, "
            f"{specs.tracks_per_wrap} tracks/wrap, {specs.total_tracks} total tracks\n",
            f"   Duration  : {minutes_to_human(specs.full_tape_minutes)} to fill tape with "
            f"{specs.passes} end-to-end passes ({_fmt(specs.seconds_per_pass, 0)} seconds/pass)\n",
        ]

    def _volume_line(self, label: str, mib: int) -> str:
        text = f"  Data {label}: {mib:12d} MiB ({mib / 1024:9.2f} GiB, {mib / 1024 / 1024:6.2f} TiB"
        cap = self._attributes["part_cap_max"]
        if cap.is_valid:
            text += f", {_fmt(_ratio(float(mib), float(cap.data_int)), 2)} FVE"
        return text + ")\n"

    def _usage_lines(self) -> list[str]:
        out = ["Usage information:\n"]
        remain = self._attributes["part_cap_remain"]
        cap = self._attributes["part_cap_max"]
        if remain.is_valid and cap.is_valid:
            r, m = remain.data_int, cap.data_int
            detail = (
                f"({r}/{m} MiB, {r // 1024}/{m // 1024} GiB, "
                f"{_float32(r) / 1024 / 1024:.2f}/{_float32(m) / 1024 / 1024:.2f} TiB)\n"
            )
            if m > 0:
                percent = (100 * r & _UINT64_MASK) // m
                out.append(f"  Partition space free  : {percent}% {detail}")
            else:
                out.append(f"  Partition space free  :  ?% {detail}")
        loads = self._attributes["load_count"]
        if loads.is_valid:
            out.append(f"  Cartridge load count  : {loads.data_int}\n")
        for written_key, read_key, scope in (
            ("total_written", "total_read", "alltime"),
            ("total_written_session", "total_read_session", "session"),
        ):
            written = self._attributes[written_key]
            read = self._attributes[read_key]
            if written.is_valid and read.is_valid:
                out.append(self._volume_line(f"written - {scope}", written.data_int))
                out.append(self._volume_line(f"read    - {scope}", read.data_int))
        return out

    def _session_lines(self) -> list[str]:
        out = ["Previous sessions:\n"]
        keys = ("device_at_load_n0", "device_at_load_n1", "device_at_load_n2", "device_at_load_n3")
        for index, key in enumerate(keys):
            load = self._attributes[key]
            if not load.is_valid:
                continue
            serial = ""
            if len(load.data_str) > 8:
                vendor = load.data_str[:8].strip(" \x00")
                serial = load.data_str[8:].strip(" \x00")
            else:
                vendor = load.data_str.strip(" \x00")
            if serial:
                out.append(
                    f"  Session N-{index}: Used in a device of vendor {vendor} (serial {serial})\n"
                )
            else:
                out.append(f"  Session N-{index}: Used in a device of vendor {vendor}\n")
        return out

    def render(self, today: date | datetime | None = None) -> str:
        """Return the report; ``today`` dates the manufacture age (default: now)."""
        out, specs = self._medium_lines(today)
        if specs is not None:
            out.extend(self._specs_lines(specs))
        out.extend(self._usage_lines())
        out.extend(self._session_lines())
        return "".join(out)

    def __str__(self) -> str:
        return self.render()