from __future__ import annotations

import copy
import json
import logging
import random
from typing import Any, Dict, Iterable, Optional

from ..core.ports import DecisionLogSink

REDACTED = "[REDACTED]"


def redact(env: Dict[str, Any], paths: Iterable[str], *, mask: str = REDACTED) -> Dict[str, Any]:
    """Return a copy of *env* with every dotted path in *paths* masked.

    ``"resource.email"`` masks ``env["resource"]["email"]``; a ``*`` segment
    matches every key at that level. Paths that do not exist are ignored.
    """
    out = copy.deepcopy(env)
    for path in paths:
        _mask(out, path.split("."), mask)
    return out


def _mask(node: Any, parts: list[str], mask: str) -> None:
    if not isinstance(node, dict) or not parts:
        return
    head, rest = parts[0], parts[1:]
    keys = list(node) if head == "*" else [head]
    for key in keys:
        if key not in node:
            continue
        if rest:
            _mask(node[key], rest, mask)
        else:
            node[key] = mask


class DecisionLogger(DecisionLogSink):
    """Audit sink writing one record per authorization decision.

    - ``sample_rate`` keeps a random fraction of allow decisions; denials
      and decisions carrying an error are always logged.
    - ``redact_keys`` masks dotted paths inside the payload's ``env``.
    - ``as_json`` renders the payload as a JSON string, otherwise as text.
    """

    def __init__(
        self,
        *,
        sample_rate: float = 1.0,
        level: int = logging.INFO,
        as_json: bool = False,
        redact_keys: Optional[Iterable[str]] = None,
        logger_name: str = "abacx.audit",
    ) -> None:
        self.sample_rate = float(sample_rate)
        self.level = level
        self.as_json = as_json
        self.redact_keys = list(redact_keys or ())
        self.logger = logging.getLogger(logger_name)

    def _sampled_out(self, payload: Dict[str, Any]) -> bool:
        if payload.get("decision") == "deny" or payload.get("error"):
            return False
        if self.sample_rate >= 1.0:
            return False
        return random.random() >= self.sample_rate

    def log(self, payload: Dict[str, Any]) -> None:
        if self._sampled_out(payload):
            return
        record = dict(payload)
        if self.redact_keys and isinstance(record.get("env"), dict):
            record["env"] = redact(record["env"], self.redact_keys)
        if self.as_json:
            msg = json.dumps(record, ensure_ascii=False, default=str)
        else:
            msg = f"decision {record}"
        self.logger.log(self.level, msg)


__all__ = ["DecisionLogger", "redact", "REDACTED"]
