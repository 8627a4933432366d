"""A tape drive: reads cartridge memory and identification through SCSI commands."""

from __future__ import annotations

import os
from typing import IO

from lto_info.cartridge import READ_ATTRIBUTE_REPLY_LENGTH, Attribute, CartridgeMemory
from lto_info.scsi import (
    INQUIRY_REPLY_LENGTH,
    SENSE_BUFFER_LENGTH,
    Direction,
    InquiryInfo,
    ScsiError,
    SgDevice,
    check_sense,
    inquiry_cdb,
    log_sense_cdb,
    parse_inquiry,
    read_attribute_cdb,
    user_label_parameter_list,
    write_attribute_cdb,
)

FAKE_DEVICE = "FAKE"
DEFAULT_DEVICE = "/dev/nst0"

_FAKE_INQUIRY = bytes(
    [
        1, 128, 3, 2, 91, 0, 1, 48,
        72, 80, 32, 32, 32, 32, 32, 32,
        85, 108, 116, 114, 105, 117, 109, 32, 50, 45, 83, 67, 83, 73, 32, 32,
        70, 54, 51, 68,
        0, 0, 0, 0, 0, 12, 0, 36,
        68, 82, 45, 49, 48, 0, 0, 0,
        0, 0, 0, 0, 12, 0, 0, 84, 11, 28, 2, 119, 2, 28,
    ]
).ljust(INQUIRY_REPLY_LENGTH, b"\x00")


def resolve_device_name(device_name: str | None = None) -> str:
    """Return the given name, else $TAPE, else the default tape device."""
    if device_name:
        return device_name
    return os.environ.get("TAPE") or DEFAULT_DEVICE


def _byte_list(data: bytes) -> str:
    return "[" + " ".join(str(b) for b in data) + "]"


class TapeDrive:
    """A tape drive, real or simulated, and the cartridge memory read from it."""

    def __init__(self, device_name: str, device: SgDevice | None = None) -> None:
        self.device_name = device_name
        self.device = device
        self.cartridge = CartridgeMemory()
        self.inquiry_info = InquiryInfo()
        self._dump: IO[str] | None = None

    @classmethod
    def open(cls, device_name: str | None = None) -> TapeDrive:
        """Open a drive; the name ``FAKE`` gives a simulated one."""
        name = resolve_device_name(device_name)
        if name == FAKE_DEVICE:
            print("Will use a fake tape drive")
            return cls(name)
        print(f"Opening device {name}")
        try:
            device = SgDevice.open_readonly(name)
        except (OSError, ScsiError) as exc:
            print("Failed to open:", exc)
            raise
        print("Checking whether device is ready")
        try:
            device.test_unit_ready()
        except ScsiError as exc:
            print("Unit is not ready:", exc)
            device.close()
            raise
        print("Unit is ready")
        return cls(name, device)

    @classmethod
    def fake(cls) -> TapeDrive:
        return cls.open(FAKE_DEVICE)

    def is_fake(self) -> bool:
        return self.device_name == FAKE_DEVICE

    def set_dump_file(self, path: str) -> None:
        """Log every raw SCSI exchange to ``path``."""
        if self._dump is not None:
            self._dump.close()
        self._dump = open(path, "w", encoding="latin-1")

    def _require_device(self) -> SgDevice:
        if self.device is None:
            raise ScsiError(f"no SCSI device behind {self.device_name}")
        return self.device

    def _write_dump(
        self,
        head: str,
        error: ScsiError | None,
        status: int,
        sense: bytes,
        cdb: bytes,
        reply: bytes,
    ) -> None:
        assert self._dump is not None
        try:
            check_sense(status, sense)
            sense_text = "<nil>"
        except ScsiError as exc:
            sense_text = str(exc).replace("\n", " ")
        self._dump.write(
            f"{head}"
            f"syscallerr: {error if error is not None else '<nil>'}\n"
            f"senserr: {sense_text}\n"
        )
        self._dump.write(
            f"inqCmdBlk: {_byte_list(cdb)}\n"
            f"senseBuf: {_byte_list(sense)}\n"
            f"replyBuf: {_byte_list(reply)}\n\n"
        )
        self._dump.flush()

    def _transfer(
        self,
        head: str,
        cdb: bytes,
        direction: Direction,
        data: bytes | None = None,
        length: int = 0,
        extra: str = "",
    ) -> bytes:
        device = self._require_device()
        error: ScsiError | None = None
        reply, status, sense = bytes(length), 0, bytes(SENSE_BUFFER_LENGTH)
        try:
            reply, status, sense = device.execute(cdb, direction, data, length)
        except ScsiError as exc:
            error = exc
        if self._dump is not None:
            # The command line sits between the sense error and the command block.
            self._write_dump(head, error, status, sense, cdb, reply) if not extra else \
                self._write_dump_with_extra(head, extra, error, status, sense, cdb, reply)
        if error is not None:
            raise error
        check_sense(status, sense)
        return reply

    def _write_dump_with_extra(
        self,
        head: str,
        extra: str,
        error: ScsiError | None,
        status: int,
        sense: bytes,
        cdb: bytes,
        reply: bytes,
    ) -> None:
        assert self._dump is not None
        try:
            check_sense(status, sense)
            sense_text = "<nil>"
        except ScsiError as exc:
            sense_text = str(exc).replace("\n", " ")
        self._dump.write(
            f"{head}"
            f"syscallerr: {error if error is not None else '<nil>'}\n"
            f"senserr: {sense_text}\n"
            f"{extra}"
            f"inqCmdBlk: {_byte_list(cdb)}\n"
            f"senseBuf: {_byte_list(sense)}\n"
            f"replyBuf: {_byte_list(reply)}\n\n"
        )
        self._dump.flush()

    def read_attribute(self, attribute: Attribute) -> int | str:
        """Read one cartridge memory attribute into ``attribute`` and return its value."""
        if self.is_fake():
            return attribute.apply_mock()
        attribute.invalidate()
        reply = self._transfer(
            f"GetAttribute[{attribute.name}]:\n",
            read_attribute_cdb(attribute.command, attribute.length),
            Direction.FROM_DEV,
            length=READ_ATTRIBUTE_REPLY_LENGTH,
            extra=f"command: 0x{attribute.command:04x}\n",
        )
        return attribute.decode(reply)

    def inquiry(self) -> InquiryInfo:
        """Query vendor, model and firmware of the drive."""
        if self.is_fake():
            reply = _FAKE_INQUIRY
        else:
            reply = self._transfer(
                "ScsiInquiry:\n",
                inquiry_cdb(),
                Direction.FROM_DEV,
                length=INQUIRY_REPLY_LENGTH,
            )
        self.inquiry_info = parse_inquiry(reply)
        return self.inquiry_info

    def status(self) -> dict[str, int] | None:
        """Return the tape driver status, or None when it cannot be read."""
        if self.device is None:
            return None
        try:
            return self.device.tape_status()
        except ScsiError:
            return None

    def set_user_label(self, text: str) -> None:
        """Write the user medium text label of the loaded cartridge."""
        params = user_label_parameter_list(text)
        self._transfer(
            "SetUserLabel:\n",
            write_attribute_cdb(len(params)),
            Direction.TO_DEV,
            data=params,
            length=len(params),
        )

    def log_sense(self, page_code: int, subpage_code: int = 0) -> bytes:
        """Return the raw current values of a log page."""
        return self._transfer(
            "LogSense:\n",
            log_sense_cdb(page_code, subpage_code),
            Direction.FROM_DEV,
            length=READ_ATTRIBUTE_REPLY_LENGTH,
        )

    def close(self) -> None:
        if self._dump is not None:
            self._dump.close()
            self._dump = None
        if self.device is not None:
            self.device.close()
            self.device = None

    def __str__(self) -> str:
        return (
            "Drive information:\n"
            f"   Vendor  : {self.inquiry_info.vendor}\n"
            f"   Model   : {self.inquiry_info.model}\n"
            f"   Firmware: {self.inquiry_info.firmware}\n"
            + str(self.cartridge)
        )