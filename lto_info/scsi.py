"""SCSI generic (sg) access: command blocks, sense checking and the SG_IO call."""

from __future__ import annotations

import array
import os
import struct
from dataclasses import dataclass
from enum import IntEnum

SENSE_BUFFER_LENGTH = 32
TIMEOUT_MS = 20_000
INQUIRY_REPLY_LENGTH = 0xFF
MIN_SG_VERSION = 30000

SG_IO = 0x2285
SG_GET_VERSION_NUM = 0x2282
_SG_INFO_OK_MASK = 0x1
_SG_INFO_OK = 0x0

_SG_IO_HDR = struct.Struct("@iiBBHIPPPIIiPBBBBHHiII")
_MTGET = struct.Struct("@lllllii")
MTIOCGET = (2 << 30) | (_MTGET.size << 16) | (ord("m") << 8) | 2

READ_ATTRIBUTE = 0x8C
WRITE_ATTRIBUTE = 0x8D
LOG_SENSE = 0x4D
INQUIRY = 0x12
TEST_UNIT_READY = 0x00

USER_LABEL_ATTRIBUTE = 0x0803
USER_LABEL_LENGTH = 160


class ScsiError(Exception):
    """A SCSI command could not be issued or completed."""


class SenseError(ScsiError):
    """The device reported an error status or sense data."""

    def __init__(self, status: int, sense_key: int, asc: int, ascq: int) -> None:
        super().__init__(
            f"SCSI status 0x{status:02x}\n"
            f"sense key 0x{sense_key:02x}, ASC 0x{asc:02x}, ASCQ 0x{ascq:02x}"
        )
        self.status = status
        self.sense_key = sense_key
        self.asc = asc
        self.ascq = ascq


class Direction(IntEnum):
    """Data transfer direction of an SG_IO request."""

    NONE = -1
    TO_DEV = -2
    FROM_DEV = -3


@dataclass(frozen=True)
class InquiryInfo:
    """Identification strings returned by a standard INQUIRY."""

    vendor: str = ""
    model: str = ""
    firmware: str = ""


def read_attribute_cdb(command: int, length: int) -> bytes:
    """READ ATTRIBUTE (8Ch) block asking for one attribute."""
    cdb = bytearray(16)
    cdb[0] = READ_ATTRIBUTE
    cdb[8] = (command >> 8) & 0xFF
    cdb[9] = command & 0xFF
    cdb[12] = length & 0xFF
    return bytes(cdb)


def write_attribute_cdb(length: int) -> bytes:
    """WRITE ATTRIBUTE (8Dh) block for a parameter list of ``length`` bytes."""
    cdb = bytearray(16)
    cdb[0] = WRITE_ATTRIBUTE
    cdb[10:14] = (length & 0xFFFFFFFF).to_bytes(4, "big")
    return bytes(cdb)


def user_label_parameter_list(text: str | bytes) -> bytes:
    """Parameter list writing the user medium text label, NUL padded."""
    raw = text.encode("utf-8") if isinstance(text, str) else bytes(text)
    value = raw[:USER_LABEL_LENGTH].ljust(USER_LABEL_LENGTH, b"\x00")
    attribute = (
        USER_LABEL_ATTRIBUTE.to_bytes(2, "big")
        + bytes([0x02])
        + USER_LABEL_LENGTH.to_bytes(2, "big")
        + value
    )
    return len(attribute).to_bytes(4, "big") + attribute


def log_sense_cdb(page_code: int, subpage_code: int = 0) -> bytes:
    """LOG SENSE (4Dh) block asking for current values of a page."""
    page_control = 0b01
    return bytes(
        [
            LOG_SENSE,
            0,
            ((page_control & 0b11) << 6) | (page_code & 0b111111),
            subpage_code & 0xFF,
            0,
            0,
            0,
            0,
            0,
            0,
        ]
    )


def inquiry_cdb() -> bytes:
    """Standard INQUIRY (12h) block."""
    return bytes([INQUIRY, 0, 0, 0, INQUIRY_REPLY_LENGTH, 0])


def _field(data: bytes, start: int, end: int) -> str:
    return bytes(data[start:end]).decode("latin-1").strip(" \x00")


def parse_inquiry(data: bytes) -> InquiryInfo:
    """Extract vendor, model and firmware from INQUIRY data."""
    return InquiryInfo(
        vendor=_field(data, 8, 16),
        model=_field(data, 16, 32),
        firmware=_field(data, 32, 36),
    )


def _byte(data: bytes, index: int) -> int:
    return data[index] if index < len(data) else 0


def check_sense(status: int, sense: bytes) -> int:
    """Raise SenseError on a failed command; return the sense key otherwise."""
    sense = bytes(sense)
    key = asc = ascq = 0
    if sense:
        code = sense[0] & 0x7F
        if code in (0x70, 0x71):
            key, asc, ascq = _byte(sense, 2) & 0x0F, _byte(sense, 12), _byte(sense, 13)
        elif code in (0x72, 0x73):
            key, asc, ascq = _byte(sense, 1) & 0x0F, _byte(sense, 2), _byte(sense, 3)
    if status != 0 or key != 0:
        raise SenseError(status, key, asc, ascq)
    return key


class SgDevice:
    """An open SCSI generic or tape device node."""

    def __init__(self, fd: int) -> None:
        self._fd: int | None = fd

    @property
    def fd(self) -> int | None:
        return self._fd

    @classmethod
    def open_readonly(cls, path: str) -> SgDevice:
        """Open ``path`` read-only and check that it speaks the sg protocol."""
        import fcntl

        fd = os.open(path, os.O_RDONLY)
        try:
            version = bytearray(4)
            try:
                fcntl.ioctl(fd, SG_GET_VERSION_NUM, version, True)
            except OSError as exc:
                raise ScsiError(
                    f"failed to get version info from sg device (errno={exc.errno})"
                ) from exc
            if int.from_bytes(version, "little" if struct.pack("=I", 1)[0] else "big") < MIN_SG_VERSION:
                raise ScsiError("device does not appear to be an sg device")
        except BaseException:
            os.close(fd)
            raise
        return cls(fd)

    def _require_open(self) -> int:
        if self._fd is None:
            raise ScsiError("device is closed")
        return self._fd

    def execute(
        self,
        cdb: bytes,
        direction: Direction,
        data: bytes | None = None,
        length: int = 0,
    ) -> tuple[bytes, int, bytes]:
        """Issue ``cdb``; return the data buffer, SCSI status and sense buffer."""
        import fcntl

        fd = self._require_open()
        direction = Direction(direction)
        if direction is Direction.TO_DEV:
            payload = bytes(data or b"")
        elif direction is Direction.FROM_DEV:
            payload = bytes(length)
        else:
            payload = b""
        buffer = array.array("B", payload)
        command = array.array("B", bytes(cdb))
        sense = array.array("B", bytes(SENSE_BUFFER_LENGTH))
        header = bytearray(
            _SG_IO_HDR.pack(
                ord("S"),
                int(direction),
                len(command),
                SENSE_BUFFER_LENGTH,
                0,
                len(buffer),
                buffer.buffer_info()[0] if len(buffer) else 0,
                command.buffer_info()[0],
                sense.buffer_info()[0],
                TIMEOUT_MS,
                0,
                0,
                0,
                0, 0, 0, 0, 0, 0, 0, 0, 0,
            )
        )
        try:
            fcntl.ioctl(fd, SG_IO, header, True)
        except OSError as exc:
            raise ScsiError(f"SG_IO ioctl failed: {exc}") from exc
        fields = _SG_IO_HDR.unpack(header)
        status, host_status, driver_status, info = fields[13], fields[17], fields[18], fields[21]
        if (info & _SG_INFO_OK_MASK) != _SG_INFO_OK and (host_status or driver_status & 0x07):
            raise ScsiError(
                f"transport error: host status 0x{host_status:02x}, "
                f"driver status 0x{driver_status:02x}"
            )
        return buffer.tobytes(), status, sense.tobytes()

    def test_unit_ready(self) -> None:
        """Raise unless the unit reports ready."""
        _, status, sense = self.execute(bytes(6), Direction.NONE)
        check_sense(status, sense)

    def tape_status(self) -> dict[str, int]:
        """Return the tape driver's MTIOCGET status."""
        import fcntl

        fd = self._require_open()
        buffer = bytearray(_MTGET.size)
        try:
            fcntl.ioctl(fd, MTIOCGET, buffer, True)
        except OSError as exc:
            raise ScsiError(f"MTIOCGET failed: {exc}") from exc
        keys = ("type", "resid", "dsreg", "gstat", "erreg", "fileno", "blkno")
        return dict(zip(keys, _MTGET.unpack(buffer)))

    def close(self) -> None:
        if self._fd is not None:
            fd, self._fd = self._fd, None
            os.close(fd)

    def __enter__(self) -> SgDevice:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()