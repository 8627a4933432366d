"""Read LTO tape cartridge memory through a SCSI device and report it."""

__version__ = "0.1.0"