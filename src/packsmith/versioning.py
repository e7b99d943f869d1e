"""Version range matching and game-version normalization.

Registry version strings are not guaranteed to be semantic versions, so
matching is lenient: strings are coerced with ``semantic_version`` where
possible, and anything that cannot be coerced only satisfies the unbounded
range or an exact ``=`` constraint naming the same string.
"""

from __future__ import annotations

import functools
import re
from dataclasses import dataclass

import semantic_version

from packsmith.errors import InvalidVersionRangeError

ANY_VERSION = "*"

_SEMVER_LIKE_RE = re.compile(r"^v?\d+(?:\.\d+){0,2}(?:[-+].*)?$")
_RANGE_SYNTAX_RE = re.compile(r"\|\||\s-\s|[<>^~]")


@dataclass(frozen=True)
class VersionRange:
    """A parsed version constraint.

    ``spec`` is None for the unbounded range and for literal pins. ``exact``
    holds the operand of a bare ``=X`` constraint so that non-semantic registry
    versions can still be pinned by their literal string; ``literal_only``
    marks pins that match nothing but that string.
    """

    raw: str
    spec: semantic_version.NpmSpec | None
    exact: str | None = None
    literal_only: bool = False

    @property
    def is_unbounded(self) -> bool:
        return self.spec is None and not self.literal_only

    def matches(self, version: str) -> bool:
        """Return True when ``version`` lies inside this range."""
        if self.is_unbounded:
            return True
        if self.exact is not None and version.strip() == self.exact:
            return True
        if self.spec is None:
            return False
        parsed = coerce_version(version)
        if parsed is None:
            return False
        return bool(self.spec.match(parsed))

    def __str__(self) -> str:
        return self.raw


@functools.lru_cache(maxsize=1024)
def parse_range(raw: str | None) -> VersionRange:
    """Parse an npm-style range expression.

    Accepted forms include ``*``, ``>=1.1``, ``=1.0``, ``^1.2.3``, ``~1.2``,
    ``1.x``, ``1.2.3 - 2.0.0`` and ``||`` alternatives. ``None`` and the empty
    string mean "any version".
    """
    text = (raw or "").strip()
    if text in ("", ANY_VERSION, "x", "X"):
        return VersionRange(raw=ANY_VERSION, spec=None)

    exact: str | None = None
    if text.startswith("=") and not text.startswith("=="):
        operand = text[1:].strip()
        if operand and not _RANGE_SYNTAX_RE.search(operand):
            exact = operand
    elif text.startswith("=="):
        # Tolerate the Python-style operator.
        operand = text[2:].strip()
        exact = operand or None
        text = f"={operand}"

    try:
        spec = semantic_version.NpmSpec(text)
    except ValueError as exc:
        if exact is not None:
            # A literal pin on a non-semantic version string, e.g. "=mc1.20-2"
            # or "=1.0.0 beta".
            return VersionRange(raw=text, spec=None, exact=exact, literal_only=True)
        msg = f"Invalid version range {raw!r}: {exc}"
        raise InvalidVersionRangeError(msg) from exc
    return VersionRange(raw=text, spec=spec, exact=exact)


@functools.lru_cache(maxsize=4096)
def coerce_version(raw: str) -> semantic_version.Version | None:
    """Coerce a registry version string, dropping build metadata.

    Returns None for strings that do not start like a version number.
    """
    text = raw.strip()
    if not _SEMVER_LIKE_RE.match(text):
        return None
    if text.startswith("v"):
        text = text[1:]
    try:
        version = semantic_version.Version.coerce(text)
    except ValueError:
        return None
    return semantic_version.Version(
        major=version.major,
        minor=version.minor,
        patch=version.patch,
        prerelease=version.prerelease,
    )


def normalize_game_version(raw: str) -> str:
    """Normalize a game version so ``1.20`` and ``1.20.0`` compare equal.

    Snapshots such as ``24w01a`` and unknown formats are only lowercased.
    """
    text = raw.strip().lower()
    if text == ANY_VERSION:
        return text
    parsed = coerce_version(text)
    if parsed is None:
        return text
    return str(parsed)
