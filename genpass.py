#!/usr/bin/env python3
"""
genpass: random password generator

Every character comes from the OS CSPRNG and is kept only if it belongs to
the allowed set, the same idea as `tr -dc '[:graph:]' < /dev/urandom`.
Defaults follow pass(1), so the same environment variables apply.

Usage:
    python3 genpass.py [LENGTH] [-n/--no-symbols] [-c/--count COUNT]
"""

import argparse
import os
import re
import secrets
import string
import sys

from rich.console import Console
from rich.markup import escape

err_console = Console(stderr=True)


# ─── Constants ───────────────────────────────────────────────────────────────
DEFAULT_LENGTH = 25  # pass's PASSWORD_STORE_GENERATED_LENGTH default

# The tr(1) character classes pass's PASSWORD_STORE_CHARACTER_SET* accept.
CHAR_CLASSES = {
    "alnum": string.ascii_letters + string.digits,
    "alpha": string.ascii_letters,
    "digit": string.digits,
    "lower": string.ascii_lowercase,
    "upper": string.ascii_uppercase,
    "punct": string.punctuation,
    "graph": string.ascii_letters + string.digits + string.punctuation,
    "xdigit": string.hexdigits,
}
DEFAULT_CHARSET = "[:punct:][:alnum:]"
DEFAULT_CHARSET_NO_SYMBOLS = "[:alnum:]"

_CLASS_TOKEN = re.compile(r"\[:([a-z]+):\]")


def expand_charset(pattern):
    """
    Expand a tr-style set such as '[:alnum:]_-' into its characters.

    Only the [:class:] forms above are expanded; anything else is taken
    literally. The result is de-duplicated and sorted.
    """
    def _expand(m):
        name = m.group(1)
        if name not in CHAR_CLASSES:
            raise ValueError(f"unknown character class: [:{name}:]")
        return CHAR_CLASSES[name]

    return "".join(sorted(set(_CLASS_TOKEN.sub(_expand, pattern))))


def default_length(environ=None):
    environ = os.environ if environ is None else environ
    raw = environ.get("PASSWORD_STORE_GENERATED_LENGTH")
    if not raw:
        return DEFAULT_LENGTH
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"PASSWORD_STORE_GENERATED_LENGTH is not a number: {raw!r}")


def charset_for(symbols, environ=None):
    environ = os.environ if environ is None else environ
    if symbols:
        pattern = environ.get("PASSWORD_STORE_CHARACTER_SET") or DEFAULT_CHARSET
    else:
        pattern = (environ.get("PASSWORD_STORE_CHARACTER_SET_NO_SYMBOLS")
                or DEFAULT_CHARSET_NO_SYMBOLS)
    return expand_charset(pattern)


def generate_password(length, symbols=True, charset=None):
    """Return a `length`-character password drawn from `charset`."""
    if length < 1:
        raise ValueError("password length must be at least 1")
    chars = charset if charset is not None else charset_for(symbols)
    if not chars:
        raise ValueError("character set is empty")
    return "".join(secrets.choice(chars) for _ in range(length))


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="genpass",
        description="Print random passwords from the system CSPRNG.",
    )
    parser.add_argument(
        "length", nargs="?", type=int, default=None,
        help=f"password length (default: $PASSWORD_STORE_GENERATED_LENGTH or {DEFAULT_LENGTH})",
    )
    parser.add_argument(
        "-n", "--no-symbols", dest="symbols", action="store_false",
        help="letters and digits only",
    )
    parser.add_argument(
        "-c", "--count", type=int, default=1,
        help="how many passwords to print (default: 1)",
    )
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    try:
        if args.count < 1:
            raise ValueError("count must be at least 1")
        length = args.length if args.length is not None else default_length()
        chars = charset_for(args.symbols)
        passwords = [generate_password(length, charset=chars)
                     for _ in range(args.count)]
    except ValueError as e:
        err_console.print(f"[red]\u2717[/] {escape(str(e))}")
        return 1

    # Plain print: passwords must not go through markup rendering.
    for pw in passwords:
        print(pw)
    return 0


if __name__ == "__main__":
    sys.exit(main())
