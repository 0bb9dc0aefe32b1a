#!/usr/bin/env python3
# SPDX-License-Identifier: MIT
# Copyright (c) 2026 ADNT Sarl <info@adnt.io>

"""
Nuvoton N76 programmer tool for Nu-Link adapters.

Usage:
    python nuvoprog_cli.py devices
    python nuvoprog_cli.py -t n76e003 program -i firmware.ihx -c @config.json
    python nuvoprog_cli.py -t n76e003 read dump.ihx
    python nuvoprog_cli.py -t n76e003 image merge -a aprom.ihx -l ldrom.ihx -c 7FFDFFFF -o out.ihx
    python nuvoprog_cli.py -t n76e003 image split -i dump.ihx -a aprom.ihx -l ldrom.ihx -c config.json
    python nuvoprog_cli.py -t n76e003 config decode -i dump.ihx

Requirements:
    pip install pyusb
"""

import argparse
import json
import logging
import sys

try:
    import usb  # noqa: F401
except ImportError:
    print("Error: pyusb not installed. Run: pip install pyusb")
    sys.exit(1)

from nuvoprog import (
    REGISTRY,
    NuvoprogError,
    UsageError,
    connect,
    list_devices,
    program,
    read_image,
    read_target_data,
)
from nuvoprog.fileio import open_write

CONFIG_HELP = (
    "Configuration, e.g. 6FFBFFFF or @config.json; "
    "fields missing from a JSON document keep their erased (0xFF) value"
)


def get_target(args):
    """Resolve the --target option."""
    if not args.target:
        raise UsageError("Target device not specified")

    target = REGISTRY.by_name(args.target)
    if target is None:
        raise UsageError(
            f"Target device '{args.target}' not found "
            f"(known: {', '.join(REGISTRY.names())})"
        )
    return target


def _progress(label: str):
    def progress(done: int, total: int):
        pct = done * 100 // total
        print(f"\r{label}: {pct:3d}% ({done}/{total} bytes)", end="", file=sys.stderr, flush=True)
    return progress


def cmd_devices(args):
    """List connected programmers."""
    for path, info in list_devices():
        if isinstance(info, NuvoprogError):
            print(f"[{path}] Error: {info}")
        else:
            print(f"[{path}] {info}")


def cmd_program(args):
    """Program a target device."""
    target = get_target(args)
    image = read_target_data(target, args.config, args.image, args.aprom, args.ldrom)

    with connect(target) as conn:
        print(f"Programmer: {conn.version}", file=sys.stderr)
        program(conn, image, verify=args.verify, progress_callback=_progress("Programming"))
        print(file=sys.stderr)

    print("Device programmed successfully!", file=sys.stderr)


def cmd_read(args):
    """Read device flash contents."""
    target = get_target(args)

    with connect(target) as conn:
        image = read_image(conn, progress_callback=_progress("Reading"))
        print(file=sys.stderr)

    with open_write(args.output) as sink:
        image.write(sink)


def cmd_image_merge(args):
    """Merge configuration, APROM and LDROM into one image."""
    target = get_target(args)
    image = read_target_data(target, args.config, args.image, args.aprom, args.ldrom)

    with open_write(args.output) as sink:
        image.write(sink)


def cmd_image_split(args):
    """Split an image into APROM, LDROM and configuration."""
    target = get_target(args)
    if not args.image:
        raise UsageError("No image specified")
    image = read_target_data(target, image=args.image)

    if args.config:
        doc = image.decode_config().to_dict()
        with open_write(args.config) as sink:
            sink.write(json.dumps(doc, indent=4).encode() + b"\n")

    if args.aprom:
        with open_write(args.aprom) as sink:
            image.write_aprom(sink)

    if args.ldrom:
        with open_write(args.ldrom) as sink:
            image.write_ldrom(sink)


def cmd_config_decode(args):
    """Decode configuration bytes."""
    target = get_target(args)
    image = read_target_data(target, args.config, args.image, need_image=False)
    print(json.dumps(image.decode_config().to_dict(), indent=4))


def _add_image_args(parser, output: bool = False):
    parser.add_argument("--image", "-i", help="Image file, e.g. image.ihx")
    parser.add_argument("--config", "-c", help=CONFIG_HELP)
    parser.add_argument("--aprom", "-a", help="APROM file, e.g. aprom.ihx")
    parser.add_argument("--ldrom", "-l", help="LDROM file, e.g. ldrom.ihx")
    if output:
        parser.add_argument("--output", "-o", required=True, help="Output file, e.g. image.ihx")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="nuvoprog",
        description="Nuvoton device programmer, focusing on the 8051 (N76) family",
    )
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Enable debug logging")
    parser.add_argument("--target", "-t", help="Target device, e.g. n76e003")

    subparsers = parser.add_subparsers(dest="command", required=True)

    # devices command
    devices = subparsers.add_parser("devices", help="List connected programmers")
    devices.set_defaults(func=cmd_devices)

    # program command
    prog = subparsers.add_parser("program", help="Program a target device")
    _add_image_args(prog)
    prog.add_argument("--no-verify", dest="verify", action="store_false",
                      help="Skip reading back flash contents")
    prog.set_defaults(func=cmd_program)

    # read command
    read = subparsers.add_parser("read", help="Read device flash contents")
    read.add_argument("output", help="Output file, e.g. dump.ihx ('-' for stdout)")
    read.set_defaults(func=cmd_read)

    # image commands
    image = subparsers.add_parser("image", help="Image manipulation commands")
    image_sub = image.add_subparsers(dest="image_command", required=True)

    merge = image_sub.add_parser("merge", help="Merge image files")
    _add_image_args(merge, output=True)
    merge.set_defaults(func=cmd_image_merge)

    split = image_sub.add_parser("split", help="Split image files")
    split.add_argument("--image", "-i", help="Image file to split")
    split.add_argument("--config", "-c", help="Configuration output, e.g. config.json")
    split.add_argument("--aprom", "-a", help="APROM output, e.g. aprom.ihx")
    split.add_argument("--ldrom", "-l", help="LDROM output, e.g. ldrom.ihx")
    split.set_defaults(func=cmd_image_split)

    # config commands
    config = subparsers.add_parser("config", help="Configuration commands")
    config_sub = config.add_subparsers(dest="config_command", required=True)

    decode = config_sub.add_parser("decode", help="Decode configuration bytes")
    decode.add_argument("--image", "-i", help="Image file, e.g. image.ihx")
    decode.add_argument("--config", "-c", help=CONFIG_HELP)
    decode.set_defaults(func=cmd_config_decode)

    return parser


def main(argv=None):
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        args.func(args)
    except NuvoprogError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
