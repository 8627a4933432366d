# lto_info

`lto-info` reads the cartridge memory (MAM) of an LTO tape through a Linux
SCSI generic device and prints a report:

- drive vendor, model and firmware, from a SCSI INQUIRY;
- cartridge type, medium and formatted density, assigning organization,
  manufacturer, serial number, barcode, manufacture date (with its age in
  years), tape length and width, MAM capacity and space remaining;
- the specifications of the detected LTO generation (capacity, speed,
  partitions, bands, wraps and tracks, time to fill the tape);
- usage: free space in the partition, load count, data written and read
  over the cartridge's life and in the current load;
- the vendors and serial numbers of the drives that loaded the cartridge
  during the last four loads.

The device is opened read-only, and the command only reads attributes.
Device access uses `fcntl` ioctls, so real drives work on Linux only.

## Installation

```
pip install .
```

No third-party libraries are needed.

## Usage

```
lto-info [-f DEV] [-d] [--dump FILE] [--mock]
```

| Option | Meaning |
| --- | --- |
| `-f DEV`, `--device DEV` | Tape device. Defaults to the `TAPE` environment variable, or `/dev/nst0`. |
| `-d`, `--debug` | Print every attribute as JSON after it is read. |
| `--dump FILE` | Write the raw SCSI command blocks, sense data and replies to `FILE`. |
| `--mock` | Use a simulated drive and cartridge instead of a real device. |
| `-h`, `--help` | Show the help message. |
| `--man` | Print a roff manual page (hidden from the help). |

The device is opened in the background; while it is still opening, a
progress line is printed every second. If it cannot be opened within 20
seconds, for example because no tape is loaded, the command prints
`Timed out opening device, is a tape inserted?` and exits with status 1.
Any other failure to open the device also exits with status 1.

Attributes the drive cannot return are left out of the report.

Try it without any hardware:

```
lto-info --mock
```

## As a library

```python
from lto_info.drive import TapeDrive

drive = TapeDrive.fake()
drive.inquiry()
for attribute in drive.cartridge:
    try:
        drive.read_attribute(attribute)
    except Exception:
        pass
print(drive)
drive.close()
```

- `lto_info.cartridge`: `CartridgeMemory` holds the known MAM attributes
  (`Attribute`, decoded with `Attribute.decode`) and builds the report with
  `render(today=None)`. `density_info()` maps a density code to the name and
  `FormatSpecs` of an LTO generation; `minutes_to_human()` formats durations.
- `lto_info.scsi`: builders for READ ATTRIBUTE, WRITE ATTRIBUTE, LOG SENSE
  and INQUIRY command blocks, `parse_inquiry()`, `check_sense()` (raises
  `SenseError`), and `SgDevice`, which opens a device read-only and issues
  SG_IO requests.
- `lto_info.drive`: `TapeDrive` ties these together for one device, real or
  simulated (`TapeDrive.open()`, `TapeDrive.fake()`). Besides reading
  attributes it offers `set_user_label()` and `log_sense()`, which return
  raw results and are not used by the command.
- `lto_info.cli`: `main()`, the `lto-info` command.

## What it does not do

The command never writes to the cartridge: there is no option to set the
user label or other attributes, and log pages are not decoded; `log_sense()`
only returns the raw reply bytes.

## Tests

```
pip install .[test]
pytest
```