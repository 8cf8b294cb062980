from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
from collections.abc import Iterable, Iterator

from .extract import is_item_id, to_item_id
from .utils import now_iso

LOG = logging.getLogger(__name__)


class SeenStore:
    """
    Durable set of listing ids that have already been observed.

    Persisted as JSON: {"seen": ["123", ...], "updatedAt": "<ISO-8601 UTC>"}.
    Readers also accept the legacy form where the file is a bare list of ids.
    Membership tests and inserts are in-memory; only save() touches disk.
    """

    def __init__(self, path: str, ids: Iterable[str] = ()) -> None:
        self.path = path
        self._ids: set[str] = {i for i in ids if is_item_id(i)}
        self.updated_at: str | None = None

    # ---- persistence ----
    @classmethod
    def load(cls, path: str) -> SeenStore:
        """
        Load the store at `path`. Missing, unreadable or malformed files
        produce an empty store; this never raises.
        """
        try:
            with open(path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            LOG.debug("Seen store %s does not exist yet; starting empty", path)
            return cls(path)
        except (OSError, ValueError, RecursionError) as e:
            LOG.warning("Seen store %s unreadable (%r); starting empty", path, e)
            return cls(path)

        if isinstance(data, list):
            raw = data
        elif isinstance(data, dict) and isinstance(data.get("seen"), list):
            raw = data["seen"]
        else:
            LOG.warning("Seen store %s has an unexpected shape; starting empty", path)
            return cls(path)

        ids = (to_item_id(v) for v in raw)
        return cls(path, (i for i in ids if i is not None))

    def save(self) -> None:
        """
        Write the full id set plus a fresh timestamp.

        Writes a temp file in the same directory and os.replace()s it over the
        target so readers never observe a partial file.
        """
        self.updated_at = now_iso()
        payload = {"seen": sorted(self._ids, key=lambda s: (len(s), s)), "updatedAt": self.updated_at}

        d = os.path.dirname(os.path.abspath(self.path)) or "."
        os.makedirs(d, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=".seen-", suffix=".tmp", dir=d)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
                f.write("\n")
            os.replace(tmp, self.path)
        except BaseException:
            with contextlib.suppress(FileNotFoundError):
                os.remove(tmp)
            raise

    # ---- set operations ----
    def add(self, item_id: str) -> bool:
        """Insert `item_id`; return True if it was not present before."""
        if item_id in self._ids:
            return False
        self._ids.add(item_id)
        return True

    def ids(self) -> frozenset[str]:
        return frozenset(self._ids)

    def __contains__(self, item_id: object) -> bool:
        return item_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self) -> Iterator[str]:
        return iter(self._ids)

    def __repr__(self) -> str:
        return f"SeenStore(path={self.path!r}, size={len(self._ids)})"
