import pytest

from lto_info.drive import TapeDrive, resolve_device_name
from lto_info.scsi import (
    Direction,
    InquiryInfo,
    ScsiError,
    SenseError,
    read_attribute_cdb,
    user_label_parameter_list,
    write_attribute_cdb,
)


class StubDevice:
    def __init__(self, reply=b"", status=0, sense=b"", error=None):
        self.reply = reply
        self.status = status
        self.sense = sense
        self.error = error
        self.calls = []
        self.closed = False

    def execute(self, cdb, direction, data=None, length=0):
        self.calls.append((bytes(cdb), direction, data, length))
        if self.error is not None:
            raise self.error
        return self.reply.ljust(length, b"\x00"), self.status, self.sense.ljust(32, b"\x00")

    def tape_status(self):
        return {"fileno": 0}

    def close(self):
        self.closed = True


def test_resolve_device_name(monkeypatch):
    monkeypatch.delenv("TAPE", raising=False)
    assert resolve_device_name(None) == "/dev/nst0"
    monkeypatch.setenv("TAPE", "/dev/nst1")
    assert resolve_device_name("") == "/dev/nst1"
    assert resolve_device_name("/dev/sg3") == "/dev/sg3"


def test_open_fake_from_environment(monkeypatch, capsys):
    monkeypatch.setenv("TAPE", "FAKE")
    drive = TapeDrive.open(None)
    assert drive.is_fake()
    assert "Will use a fake tape drive" in capsys.readouterr().out


def test_open_missing_device(tmp_path):
    with pytest.raises(FileNotFoundError):
        TapeDrive.open(str(tmp_path / "missing"))


def test_open_non_sg_device(tmp_path):
    path = tmp_path / "plain"
    path.write_bytes(b"")
    with pytest.raises(ScsiError):
        TapeDrive.open(str(path))


def test_fake_reads_mock_values():
    drive = TapeDrive.fake()
    assert drive.read_attribute(drive.cartridge.load_count) == 42
    assert drive.read_attribute(drive.cartridge.manufacturer) == "FAKMANUF"
    assert drive.cartridge.load_count.is_valid


def test_fake_mocked_error():
    drive = TapeDrive.fake()
    with pytest.raises(RuntimeError):
        drive.read_attribute(drive.cartridge.barcode)
    assert not drive.cartridge.barcode.is_valid


def test_fake_inquiry():
    drive = TapeDrive.fake()
    assert drive.inquiry() == InquiryInfo("HP", "Ultrium 2-SCSI", "F63D")
    assert drive.status() is None


def test_fake_report():
    drive = TapeDrive.fake()
    drive.inquiry()
    for attribute in drive.cartridge:
        try:
            drive.read_attribute(attribute)
        except RuntimeError:
            pass
    text = str(drive)
    assert text.startswith("Drive information:\n   Vendor  : HP\n")
    assert "Medium information:\n" in text


def test_fake_cannot_write_label():
    with pytest.raises(ScsiError):
        TapeDrive.fake().set_user_label("Label")


def test_read_ascii_attribute():
    device = StubDevice(reply=bytes(9) + b"ABC".ljust(32, b" "))
    drive = TapeDrive("/dev/sg9", device)
    attribute = drive.cartridge.serial_no
    assert drive.read_attribute(attribute) == "ABC"
    assert attribute.is_valid
    cdb, direction, _, length = device.calls[0]
    assert cdb == read_attribute_cdb(attribute.command, attribute.length)
    assert direction == Direction.FROM_DEV
    assert length == 512


def test_read_binary_attribute():
    device = StubDevice(reply=bytes(9) + (42).to_bytes(8, "big"))
    drive = TapeDrive("/dev/sg9", device)
    assert drive.read_attribute(drive.cartridge.load_count) == 42


def test_read_attribute_sense_error():
    sense = bytes([0x70, 0, 0x05]) + bytes(9) + bytes([0x24, 0])
    device = StubDevice(status=0x02, sense=sense)
    drive = TapeDrive("/dev/sg9", device)
    with pytest.raises(SenseError) as info:
        drive.read_attribute(drive.cartridge.serial_no)
    assert info.value.sense_key == 0x05
    assert not drive.cartridge.serial_no.is_valid


def test_dump_file_records_exchange(tmp_path):
    device = StubDevice(reply=bytes(9) + b"ABC".ljust(32, b" "))
    drive = TapeDrive("/dev/sg9", device)
    dump = tmp_path / "dump.txt"
    drive.set_dump_file(str(dump))
    drive.read_attribute(drive.cartridge.serial_no)
    drive.close()
    text = dump.read_text(encoding="latin-1")
    assert text.startswith("GetAttribute[Serial No]:\nsyscallerr: <nil>\nsenserr: <nil>\n")
    assert "command: 0x0401\ninqCmdBlk: [140 0 0 0 0 0 0 0 4 1 0 0 32 0 0 0]\n" in text
    assert device.closed


def test_dump_records_transport_error(tmp_path):
    device = StubDevice(error=ScsiError("boom"))
    drive = TapeDrive("/dev/sg9", device)
    dump = tmp_path / "dump.txt"
    drive.set_dump_file(str(dump))
    with pytest.raises(ScsiError):
        drive.inquiry()
    drive.close()
    text = dump.read_text(encoding="latin-1")
    assert text.startswith("ScsiInquiry:\nsyscallerr: boom\n")


def test_inquiry_from_device():
    reply = bytes(8) + b"ACME    " + b"TAPE-9000       " + b"0001"
    drive = TapeDrive("/dev/sg9", StubDevice(reply=reply))
    assert drive.inquiry() == InquiryInfo("ACME", "TAPE-9000", "0001")
    assert drive.inquiry_info.model == "TAPE-9000"


def test_set_user_label_sends_parameter_list():
    device = StubDevice()
    drive = TapeDrive("/dev/sg9", device)
    drive.set_user_label("Label")
    cdb, direction, data, length = device.calls[0]
    params = user_label_parameter_list("Label")
    assert data == params
    assert cdb == write_attribute_cdb(len(params))
    assert direction == Direction.TO_DEV
    assert length == len(params)


def test_log_sense_returns_reply():
    device = StubDevice(reply=b"\x2e\x00\x00\x04")
    drive = TapeDrive("/dev/sg9", device)
    reply = drive.log_sense(0x2E, 0)
    assert reply[:4] == b"\x2e\x00\x00\x04"
    assert len(reply) == 512
    assert device.calls[0][0][0] == 0x4D


def test_status_from_device():
    drive = TapeDrive("/dev/sg9", StubDevice())
    assert drive.status() == {"fileno": 0}