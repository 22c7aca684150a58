"""
Allowlist gate and fixed-OTP policy.

Both are loaded from small files in the data directory at startup. The
allowlist fails closed: a missing, unreadable or empty file rejects every
phone unless the development-only ``allow_all`` switch is on.
"""

import hashlib
import json
import time
from pathlib import Path
from typing import Iterable, Optional

import structlog

logger = structlog.get_logger(__name__)

# Coarsest mtime resolution we expect from the filesystem (FAT, some mounts)
MTIME_RESOLUTION_NS = 2_000_000_000


def _phones_from(entries: Iterable[object]) -> frozenset[str]:
    return frozenset(p for p in entries if isinstance(p, str) and p.startswith("+"))


def _read_allowlist_bytes(path: Path) -> Optional[bytes]:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        logger.warning("allowlist_missing", path=str(path))
    except OSError as e:
        logger.error("allowlist_unreadable", path=str(path), error=str(e))
    return None


def parse_allowlist(raw: bytes, path: Path) -> frozenset[str]:
    """Parse ``{"phones": [...]}``. Anything unusable yields an empty set."""
    try:
        doc = json.loads(raw)
    except ValueError as e:
        logger.error("allowlist_unreadable", path=str(path), error=str(e))
        return frozenset()

    phones = doc.get("phones") if isinstance(doc, dict) else None
    if not isinstance(phones, list):
        logger.warning("allowlist_malformed", path=str(path))
        return frozenset()
    return _phones_from(phones)


def load_allowlist_file(path: Path) -> frozenset[str]:
    raw = _read_allowlist_bytes(path)
    if raw is None:
        return frozenset()
    return parse_allowlist(raw, path)


def load_phone_lines(path: Path) -> frozenset[str]:
    """Read one phone per line, ignoring blanks and lines without a leading +."""
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return frozenset()
    except OSError as e:
        logger.error("phone_list_unreadable", path=str(path), error=str(e))
        return frozenset()
    return _phones_from(line.strip() for line in content.splitlines())


class AllowlistGate:
    """
    Decides which normalized phones may request codes and vote.

    When backed by a file, the gate re-reads it whenever the file's
    modification stamp changes, so organisers can remove a number without a
    restart and existing sessions are cut off on their next request.

    An unchanged stamp is trusted only once the file's mtime is older than
    the filesystem's mtime resolution at the last check; until then the file
    is re-read and compared by content hash, so a same-size edit within the
    same mtime tick is still picked up.

    Checks stat (and occasionally read) a small local file on the request
    path. That blocks the event loop briefly, which is acceptable for a
    file of a few hundred numbers.
    """

    def __init__(
        self,
        phones: Iterable[str] = (),
        *,
        path: Optional[Path] = None,
        allow_all: bool = False,
    ):
        self._phones = _phones_from(phones)
        self._path = path
        self._stamp: Optional[tuple[int, int]] = None
        self._digest: Optional[str] = None
        self._checked_ns = 0
        self._loaded = False
        self.allow_all = allow_all
        if path is not None:
            self._reload_if_changed()

    @classmethod
    def from_file(cls, path: Path, allow_all: bool = False) -> "AllowlistGate":
        return cls(path=path, allow_all=allow_all)

    @staticmethod
    def _file_stamp(path: Path) -> Optional[tuple[int, int]]:
        try:
            st = path.stat()
        except OSError:
            return None
        return (st.st_mtime_ns, st.st_size)

    def _stamp_is_settled(self, stamp: Optional[tuple[int, int]]) -> bool:
        if stamp is None:
            return True
        return self._checked_ns - stamp[0] >= MTIME_RESOLUTION_NS

    def _reload_if_changed(self) -> None:
        path = self._path
        if path is None:
            return
        stamp = self._file_stamp(path)
        if self._loaded and stamp == self._stamp and self._stamp_is_settled(stamp):
            return

        raw = _read_allowlist_bytes(path)
        digest = hashlib.sha256(raw).hexdigest() if raw is not None else None
        self._stamp = stamp
        self._checked_ns = time.time_ns()
        if self._loaded and digest == self._digest:
            return

        self._loaded = True
        self._digest = digest
        self._phones = parse_allowlist(raw, path) if raw is not None else frozenset()
        logger.info("allowlist_loaded", count=len(self._phones))

    def is_authorized(self, phone: Optional[str]) -> bool:
        if not phone:
            return False
        if self.allow_all:
            return True
        self._reload_if_changed()
        return phone in self._phones

    def __len__(self) -> int:
        self._reload_if_changed()
        return len(self._phones)


class FixedOtpPolicy:
    """
    Operator bypass that replaces the random code with a well-known one.

    Modes:
    - off: never applies
    - listed: applies to phones in the fixed-OTP list
    - all: applies to every phone (demo setups)

    When it applies, no SMS is sent.
    """

    MODES = ("off", "listed", "all")

    def __init__(self, code: str, mode: str = "listed", phones: Iterable[str] = ()):
        if mode not in self.MODES:
            raise ValueError(f"Unknown fixed OTP mode: {mode}")
        self.code = code
        self.mode = mode
        self.phones = _phones_from(phones)

    def applies_to(self, phone: str) -> bool:
        if self.mode == "all":
            return True
        if self.mode == "listed":
            return phone in self.phones
        return False
