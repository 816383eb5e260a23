# cpclient/benchmark/patterns.py

"""Filename patterns for per-run benchmark outputs."""

import re

_FLATTEN = re.compile(r"[\\/\s]+")


def flat_name(name: str) -> str:
    """Model name usable as a single path component."""
    return _FLATTEN.sub("_", name)


def expand_pattern(pattern: str, name: str, seed) -> str:
    """Substitute ``{name}``, ``{seed}`` and ``{flat_name}`` in ``pattern``.

    Other braces are left untouched. ``seed`` may be None for single-seed runs
    and then expands to an empty string.
    """
    return (
        pattern.replace("{name}", name)
        .replace("{flat_name}", flat_name(name))
        .replace("{seed}", "" if seed is None else str(seed))
    )
