import os

import pytest

from lto_info.scsi import (
    Direction,
    InquiryInfo,
    ScsiError,
    SenseError,
    SgDevice,
    check_sense,
    inquiry_cdb,
    log_sense_cdb,
    parse_inquiry,
    read_attribute_cdb,
    user_label_parameter_list,
    write_attribute_cdb,
)


def test_read_attribute_cdb_layout():
    cdb = read_attribute_cdb(0x0401, 32)
    assert len(cdb) == 16
    assert cdb[0] == 0x8C
    assert cdb[8:10] == bytes([0x04, 0x01])
    assert cdb[12] == 32
    assert cdb[13:] == bytes(3)


def test_write_attribute_cdb_layout():
    cdb = write_attribute_cdb(169)
    assert len(cdb) == 16
    assert cdb[0] == 0x8D
    assert cdb[13] == 169
    assert cdb[1:13] == bytes(12)


def test_user_label_parameter_list():
    params = user_label_parameter_list("abc")
    assert len(params) == 169
    assert params[:9] == bytes([0, 0, 0, 165, 0x08, 0x03, 2, 0, 160])
    assert params[9:12] == b"abc"
    assert params[12:] == bytes(157)


def test_user_label_is_truncated():
    params = user_label_parameter_list("x" * 300)
    assert len(params) == 169
    assert params[9:] == b"x" * 160


def test_log_sense_cdb():
    cdb = log_sense_cdb(0x2E, 0x01)
    assert len(cdb) == 10
    assert cdb[0] == 0x4D
    assert cdb[2] == (0b01 << 6) | 0x2E
    assert cdb[3] == 0x01


def test_inquiry_cdb():
    assert inquiry_cdb() == bytes([0x12, 0, 0, 0, 0xFF, 0])


def test_parse_inquiry():
    data = bytes(8) + b"ACME    " + b"TAPE-9000       " + b"0001" + bytes(20)
    assert parse_inquiry(data) == InquiryInfo("ACME", "TAPE-9000", "0001")


def test_parse_inquiry_short_data():
    assert parse_inquiry(b"") == InquiryInfo("", "", "")


def test_check_sense_good_returns_key():
    assert check_sense(0, bytes(32)) == 0


def test_check_sense_fixed_format():
    sense = bytearray(32)
    sense[0] = 0x70
    sense[2] = 0x05
    sense[12] = 0x24
    sense[13] = 0x01
    with pytest.raises(SenseError) as info:
        check_sense(0x02, bytes(sense))
    assert info.value.sense_key == 0x05
    assert info.value.asc == 0x24
    assert info.value.ascq == 0x01
    assert info.value.status == 0x02


def test_check_sense_descriptor_format():
    sense = bytearray(32)
    sense[0] = 0x72
    sense[1] = 0x03
    sense[2] = 0x11
    with pytest.raises(SenseError) as info:
        check_sense(0, bytes(sense))
    assert info.value.sense_key == 0x03
    assert info.value.asc == 0x11


def test_check_sense_bad_status_without_sense():
    with pytest.raises(SenseError) as info:
        check_sense(0x08, b"")
    assert info.value.status == 0x08


def test_sense_error_is_scsi_error():
    with pytest.raises(ScsiError):
        check_sense(0x02, b"")


def test_open_readonly_rejects_regular_file(tmp_path):
    path = tmp_path / "plain"
    path.write_bytes(b"data")
    with pytest.raises(ScsiError):
        SgDevice.open_readonly(str(path))


def test_open_readonly_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        SgDevice.open_readonly(str(tmp_path / "missing"))


def test_context_manager_closes(tmp_path):
    path = tmp_path / "plain"
    path.write_bytes(b"")
    fd = os.open(path, os.O_RDONLY)
    with SgDevice(fd) as device:
        assert device.fd == fd
    assert device.fd is None
    with pytest.raises(OSError):
        os.fstat(fd)
    with pytest.raises(ScsiError):
        device.execute(inquiry_cdb(), Direction.FROM_DEV, None, 255)