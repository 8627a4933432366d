"""Command line entry point: open a tape drive and print its cartridge memory report."""

from __future__ import annotations

import argparse
import json
import queue
import sys
import threading
import time
from datetime import date
from typing import TextIO

from lto_info.drive import TapeDrive
from lto_info.scsi import ScsiError

PROG = "lto-info"
DESCRIPTION = "Show LTO drive identification and tape cartridge memory information"
OPEN_TIMEOUT = 20.0
_POLL_INTERVAL = 0.01
_PROGRESS_INTERVAL = 1.0


def build_parser() -> argparse.ArgumentParser:
    """Return the command line parser."""
    parser = argparse.ArgumentParser(prog=PROG, description=DESCRIPTION, add_help=False)
    options = parser.add_argument_group("Application Options")
    options.add_argument(
        "-f",
        "--device",
        metavar="DEV",
        default=None,
        help="Tape device (default: /dev/nst0, or TAPE envvar)",
    )
    options.add_argument(
        "--mock", action="store_true", help="Use a mocked tape drive (for tests only)"
    )
    options.add_argument("-d", "--debug", action="store_true", help="Print debug information")
    options.add_argument("--dump", metavar="FILE", default=None, help="Dump SCSI raw data to a file")
    options.add_argument("--man", action="store_true", help=argparse.SUPPRESS)
    help_options = parser.add_argument_group("Help Options")
    help_options.add_argument("-h", "--help", action="help", help="Show this help message")
    return parser


def _roff(text: str) -> str:
    return text.replace("\\", "\\e").replace("-", "\\-")


def render_man_page(parser: argparse.ArgumentParser) -> str:
    """Return a roff manual page describing the parser's visible options."""
    today = date.today()
    lines = [
        f'.TH {parser.prog} 1 "{today.day} {today:%B %Y}"',
        ".SH NAME",
        f"{_roff(parser.prog)} \\- {_roff(parser.description or '')}",
        ".SH SYNOPSIS",
        f"\\fB{_roff(parser.prog)}\\fP [OPTIONS]",
        ".SH DESCRIPTION",
        _roff(parser.description or ""),
        ".SH OPTIONS",
    ]
    for group in parser._action_groups:
        visible = [a for a in group._group_actions if a.help is not argparse.SUPPRESS]
        if not visible:
            continue
        lines.append(f".SS {group.title}")
        for action in visible:
            names = ", ".join(f"\\fB{_roff(option)}\\fR" for option in action.option_strings)
            if action.metavar:
                names += f" \\fI{_roff(str(action.metavar))}\\fR"
            lines.append(".TP")
            lines.append(f"\\fB{names}\\fP")
            lines.append(_roff(action.help or ""))
    return "\n".join(lines) + "\n"


def _format_duration(seconds: float) -> str:
    total = int(seconds + 0.5) if seconds >= 0 else 0
    hours, rest = divmod(total, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h{minutes}m{secs}s"
    if minutes:
        return f"{minutes}m{secs}s"
    return f"{secs}s"


def open_drive(
    device_name: str | None = None,
    mock: bool = False,
    timeout: float = OPEN_TIMEOUT,
    out: TextIO | None = None,
) -> TapeDrive:
    """Open a drive in the background, reporting progress; raise TimeoutError if it hangs."""
    stream = out if out is not None else sys.stdout
    results: queue.Queue[tuple[TapeDrive | None, Exception | None]] = queue.Queue(maxsize=1)

    def worker() -> None:
        try:
            drive = TapeDrive.fake() if mock else TapeDrive.open(device_name)
        except Exception as exc:
            results.put((None, exc))
            return
        results.put((drive, None))

    threading.Thread(target=worker, name="open-drive", daemon=True).start()

    started = time.monotonic()
    deadline = started + timeout
    last_report = started
    while (remaining := deadline - time.monotonic()) > 0:
        try:
            drive, error = results.get(timeout=min(remaining, _POLL_INTERVAL))
        except queue.Empty:
            now = time.monotonic()
            if now - last_report > _PROGRESS_INTERVAL:
                stream.write(
                    "Still trying to open the device, aborting in "
                    f"{_format_duration(deadline - now)}...\n"
                )
                stream.flush()
                last_report = now
            continue
        if error is not None:
            raise error
        assert drive is not None
        return drive
    raise TimeoutError(f"timed out after {timeout:g}s opening device")


def main(argv: list[str] | None = None) -> int:
    """Run the command; return the process exit status."""
    parser = build_parser()
    try:
        options = parser.parse_args(argv)
    except SystemExit:
        return 1

    if options.man:
        print("man")
        sys.stdout.write(render_man_page(parser))
        return 0

    try:
        drive = open_drive(options.device, options.mock)
    except TimeoutError:
        print("Timed out opening device, is a tape inserted?")
        return 1
    except Exception:
        print("Failed")
        return 1
    print(f"Device {drive.device_name} opened")

    try:
        if options.dump:
            drive.set_dump_file(options.dump)

        try:
            drive.inquiry()
        except ScsiError:
            pass

        status = drive.status()
        print("<nil>" if status is None else status)

        attributes = list(drive.cartridge)
        for number, attribute in enumerate(attributes, start=1):
            print(f"\rReading attribute {number:02d}/{len(attributes):02d}...", end="", flush=True)
            try:
                drive.read_attribute(attribute)
            except (ScsiError, ValueError, RuntimeError):
                pass
            if options.debug:
                print(json.dumps(attribute.to_dict(), indent=3, ensure_ascii=False))
        print("")
        print(drive)
    finally:
        drive.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())