"""Runtime configuration for template import and export."""

from __future__ import annotations

from dataclasses import dataclass
import os
from typing import Mapping

from pdftpl.models import BOX_NAMES


DEFAULT_TEMPLATE_PREFIX = "/PDFTPL"
DEFAULT_BOX = "/MediaBox"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _parse_flag(source: Mapping[str, str], name: str, default: bool) -> bool:
    raw = source.get(name, "").strip().lower()
    if not raw:
        return default
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean flag, got {raw!r}")


@dataclass(frozen=True, slots=True)
class ImporterSettings:
    """Validated settings shared by the coordinator and its writers."""

    template_prefix: str = DEFAULT_TEMPLATE_PREFIX
    default_box: str = DEFAULT_BOX
    compress: bool = True
    cache_by_box: bool = True

    def __post_init__(self) -> None:
        if not self.template_prefix.startswith("/") or len(self.template_prefix) < 2:
            raise ValueError("PDFTPL_TEMPLATE_PREFIX must be a PDF name such as /PDFTPL")
        if any(char.isspace() for char in self.template_prefix):
            raise ValueError("PDFTPL_TEMPLATE_PREFIX cannot contain whitespace")
        if self.default_box not in BOX_NAMES:
            allowed = ", ".join(BOX_NAMES)
            raise ValueError(f"PDFTPL_DEFAULT_BOX must be one of: {allowed}")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "ImporterSettings":
        source: Mapping[str, str] = os.environ if environ is None else environ

        prefix = source.get("PDFTPL_TEMPLATE_PREFIX", DEFAULT_TEMPLATE_PREFIX).strip()
        default_box = source.get("PDFTPL_DEFAULT_BOX", DEFAULT_BOX).strip()

        return cls(
            template_prefix=prefix or DEFAULT_TEMPLATE_PREFIX,
            default_box=default_box or DEFAULT_BOX,
            compress=_parse_flag(source, "PDFTPL_COMPRESS", True),
            cache_by_box=_parse_flag(source, "PDFTPL_CACHE_BY_BOX", True),
        )
