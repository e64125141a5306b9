from __future__ import annotations

import json
from typing import Any, Dict, Literal, Optional

Format = Literal["json", "yaml"]


def _detect_format(
    *, fmt: Optional[str] = None, content_type: Optional[str] = None, filename: Optional[str] = None
) -> Format:
    """Pick a document format.

    Precedence: explicit *fmt*, then *content_type*, then the file extension;
    JSON is the fallback.
    """
    if fmt in ("json", "yaml"):
        return fmt  # type: ignore[return-value]
    if content_type:
        ct = content_type.lower()
        if "yaml" in ct:
            return "yaml"
        if "json" in ct:
            return "json"
    if filename:
        name = filename.lower()
        if name.endswith((".yaml", ".yml")):
            return "yaml"
    return "json"


def parse_policy_text(
    text: str,
    *,
    fmt: Optional[str] = None,
    content_type: Optional[str] = None,
    filename: Optional[str] = None,
) -> Dict[str, Any]:
    """Parse a policy document (roles, policies, user_roles) from text."""
    kind = _detect_format(fmt=fmt, content_type=content_type, filename=filename)
    if kind == "json":
        doc = json.loads(text)
    else:
        try:
            import yaml
        except Exception as e:
            raise ImportError("YAML policy documents require PyYAML: pip install PyYAML") from e
        doc = yaml.safe_load(text)
        if doc is None:
            return {}
    if not isinstance(doc, dict):
        raise ValueError("policy document must be a mapping at the top level")
    return doc


def parse_policy_bytes(
    data: bytes,
    *,
    fmt: Optional[str] = None,
    content_type: Optional[str] = None,
    filename: Optional[str] = None,
    encoding: str = "utf-8",
) -> Dict[str, Any]:
    return parse_policy_text(
        data.decode(encoding), fmt=fmt, content_type=content_type, filename=filename
    )


__all__ = ["parse_policy_text", "parse_policy_bytes"]
