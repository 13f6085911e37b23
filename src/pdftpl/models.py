"""Records shared by the reader, the writer and the import coordinator."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from pdftpl.pdf.base import TemplateWriter


BOX_NAMES = ("/MediaBox", "/CropBox", "/BleedBox", "/TrimBox", "/ArtBox")


@dataclass(frozen=True, slots=True)
class SequentialId:
    """Writer-assigned object number, dense within one writer."""

    value: int

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True, slots=True)
class ContentHashId:
    """Order-independent sha1 fingerprint of an object's identity."""

    digest: str

    def __str__(self) -> str:
        return self.digest


ObjectId = Union[SequentialId, ContentHashId]


@dataclass(frozen=True, slots=True)
class PageBox:
    """One page rectangle, normalised so that ``llx <= urx`` and ``lly <= ury``."""

    x: float
    y: float
    width: float
    height: float
    llx: float
    lly: float
    urx: float
    ury: float

    @classmethod
    def from_corners(cls, values: list[float], scale: float = 1.0) -> "PageBox":
        if len(values) != 4:
            raise ValueError(f"Page box needs 4 numbers, got {len(values)}")
        if scale <= 0:
            raise ValueError("Scale must be positive")

        x1, y1, x2, y2 = (value / scale for value in values)
        return cls(
            x=x1,
            y=y1,
            width=abs(x2 - x1),
            height=abs(y2 - y1),
            llx=min(x1, x2),
            lly=min(y1, y2),
            urx=max(x1, x2),
            ury=max(y1, y2),
        )

    def as_dict(self) -> dict[str, float]:
        return {
            "x": self.x,
            "y": self.y,
            "width": self.width,
            "height": self.height,
            "llx": self.llx,
            "lly": self.lly,
            "urx": self.urx,
            "ury": self.ury,
        }


@dataclass(frozen=True, slots=True)
class SourceObject:
    """Source text of one indirect object and its raw (still encoded) stream."""

    xref: int
    source: str
    stream: bytes | None = None


@dataclass(slots=True)
class TplInfo:
    """Binds a global template id to the writer that produced it."""

    template_id: int
    document: str
    writer: "TemplateWriter"
    local_id: int
    page: int
    box: str


@dataclass(frozen=True, slots=True)
class TemplatePlacement:
    """Draw parameters for ``q scale_x 0 0 scale_y x y cm <name> Do Q``."""

    name: str
    scale_x: float
    scale_y: float
    x: float
    y: float
    width: float
    height: float


@dataclass(slots=True)
class HashedExport:
    """Hash-mode export merged across every bound document."""

    names: dict[str, str] = field(default_factory=dict)
    objects: dict[str, bytes] = field(default_factory=dict)
    positions: dict[str, dict[int, str]] = field(default_factory=dict)
