# escontroller/version.py
import re
from dataclasses import dataclass
from functools import total_ordering
from typing import Iterable, Optional, Tuple

from escontroller.errors import MalformedVersion

_VERSION_RE = re.compile(
    r"^(?P<major>[^.\-+]+)\.(?P<minor>[^.\-+]+)\.(?P<patch>[^.\-+]+)"
    r"(?:-(?P<pre>[0-9A-Za-z.\-]+))?"
    r"(?:\+(?P<build>[0-9A-Za-z.\-]+))?$"
)


def _pre_key(pre: str) -> Tuple:
    # numeric identifiers sort before alphanumeric ones, numerically among themselves
    key = []
    for part in pre.split("."):
        if part.isdigit():
            key.append((0, int(part), ""))
        else:
            key.append((1, 0, part))
    return tuple(key)


@total_ordering
@dataclass(frozen=True)
class Version:
    major: int
    minor: int
    patch: int
    pre: str = ""

    def __str__(self):
        base = f"{self.major}.{self.minor}.{self.patch}"
        if self.pre:
            return f"{base}-{self.pre}"
        return base

    def __lt__(self, other):
        if not isinstance(other, Version):
            return NotImplemented
        mine = (self.major, self.minor, self.patch)
        theirs = (other.major, other.minor, other.patch)
        if mine != theirs:
            return mine < theirs
        # a pre-release precedes the release
        if self.pre and not other.pre:
            return True
        if not self.pre:
            return False
        return _pre_key(self.pre) < _pre_key(other.pre)

    def gte(self, other: "Version") -> bool:
        return self >= other

    def gt(self, other: "Version") -> bool:
        return self > other


def parse(text: str) -> Version:
    if not isinstance(text, str):
        raise MalformedVersion(text, "not a string")
    m = _VERSION_RE.match(text.strip())
    if not m:
        raise MalformedVersion(text, "expected major.minor.patch[-pre]")
    numbers = []
    for field in ("major", "minor", "patch"):
        segment = m.group(field)
        if not re.fullmatch(r"[0-9]+", segment):
            raise MalformedVersion(text, f"non-numeric {field} '{segment}'")
        numbers.append(int(segment))
    return Version(numbers[0], numbers[1], numbers[2], m.group("pre") or "")


def min_version(texts: Iterable[str]) -> Optional[Version]:
    """Lowest version in texts, None when empty.

    A single unparsable entry fails the whole computation.
    """
    lowest = None
    for text in texts:
        v = parse(text)
        if lowest is None or v < lowest:
            lowest = v
    return lowest


def is_valid_upgrade(from_: str, to: str) -> bool:
    """Reports whether moving from one version to another is a permitted upgrade."""
    src = parse(from_)
    dst = parse(to)
    # major digits must be equal or differ by only 1
    valid_major = dst.major == src.major or dst.major == src.major + 1
    return valid_major and not src.gte(dst)


def is_prerelease(version) -> bool:
    if isinstance(version, str):
        version = parse(version)
    return len(version.pre) > 0


def check_compatibility(recorded: Optional[str], current: str) -> bool:
    """Whether a controller at `current` may take over a resource last
    reconciled by a controller at `recorded`."""
    if not recorded:
        return True
    if parse(recorded) == parse(current):
        return True
    return is_valid_upgrade(recorded, current)
