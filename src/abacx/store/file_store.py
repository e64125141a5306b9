from __future__ import annotations

import hashlib
import logging
import os
import tempfile
from typing import Any, Dict, List, NamedTuple, Optional

from ..core.model import Permission, Policy, Role
from .memory import InMemoryPolicyStore
from .policy_loader import parse_policy_text

logger = logging.getLogger("abacx.store")


def atomic_write(path: str, data: str, *, encoding: str = "utf-8") -> None:
    """Replace *path* with *data* in one step (temp file in the same directory, then ``os.replace``)."""
    fd, tmp = tempfile.mkstemp(prefix=".abacx.tmp.", dir=os.path.dirname(path) or ".")
    try:
        with os.fdopen(fd, "w", encoding=encoding) as out:
            out.write(data)
        os.replace(tmp, path)
    finally:
        if os.path.exists(tmp):
            os.unlink(tmp)


class _Fingerprint(NamedTuple):
    size: int
    mtime_ns: int
    sha256: str


def _sha256(path: str, block: int) -> str:
    digest = hashlib.sha256()
    with open(path, "rb") as fh:
        while True:
            buf = fh.read(block)
            if not buf:
                break
            digest.update(buf)
    return digest.hexdigest()


class FilePolicyStore:
    """
    Policy and role store backed by a local JSON or YAML document.

    The ETag is the SHA-256 of the file content, so touching the file
    without editing it never triggers a reload. The digest is recomputed
    only when size or mtime change.

    Nothing is read until :meth:`reload` (or a :class:`HotReloader`) runs;
    until then the store is empty and every decision is a default deny.
    """

    def __init__(self, path: str, *, validate_schema: bool = False, chunk_size: int = 512 * 1024) -> None:
        self.path = path
        self.validate_schema = validate_schema
        self.chunk_size = int(chunk_size)
        self._state = InMemoryPolicyStore()
        self._fingerprint: Optional[_Fingerprint] = None
        self._applied: Optional[str] = None

    def etag(self) -> Optional[str]:
        try:
            st = os.stat(self.path)
        except FileNotFoundError:
            self._fingerprint = None
            return None
        fp = self._fingerprint
        if fp is None or (fp.size, fp.mtime_ns) != (st.st_size, st.st_mtime_ns):
            fp = _Fingerprint(st.st_size, st.st_mtime_ns, _sha256(self.path, self.chunk_size))
            self._fingerprint = fp
        return fp.sha256

    def load(self) -> Dict[str, Any]:
        with open(self.path, encoding="utf-8") as fh:
            doc = parse_policy_text(fh.read(), filename=self.path)
        if self.validate_schema:
            from ..dsl.validate import validate_document

            validate_document(doc)
        return doc

    def apply(self, doc: Dict[str, Any], etag: Optional[str] = None) -> None:
        """Swap in a parsed document. Malformed documents leave the old state in place."""
        self._state.replace_document(doc)
        self._applied = etag

    def reload(self) -> bool:
        """Load the document if its content changed; True when the state was replaced."""
        etag = self.etag()
        if etag is not None and etag == self._applied:
            return False
        self.apply(self.load(), etag)
        logger.info("abacx: policy document loaded from %s", self.path)
        return True

    @property
    def loaded_etag(self) -> Optional[str]:
        return self._applied

    async def load_policies(self, role_id: int, permission: Permission) -> List[Policy]:
        return await self._state.load_policies(role_id, permission)

    async def load_roles(self, subject_id: str) -> List[Role]:
        return await self._state.load_roles(subject_id)


__all__ = ["atomic_write", "FilePolicyStore"]
