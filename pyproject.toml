[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "lto_info"
version = "0.1.0"
description = "Read and display the cartridge memory (MAM) of LTO tapes through a Linux SCSI generic device"
requires-python = ">=3.10"
dependencies = []
keywords = ["lto", "tape", "scsi", "mam", "cartridge-memory", "backup"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Console",
    "Intended Audience :: System Administrators",
    "Operating System :: POSIX :: Linux",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: System :: Archiving :: Backup",
    "Topic :: System :: Hardware",
]

[project.optional-dependencies]
test = ["pytest"]

[project.scripts]
lto-info = "lto_info.cli:main"

[tool.hatch.build.targets.wheel]
packages = ["lto_info"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
