"""Detection value types and native-to-display coordinate mapping."""

from __future__ import annotations

from dataclasses import dataclass, replace


@dataclass(frozen=True)
class Size:
    """Width/height pair in pixels."""

    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"Size must be positive, got {self.width}x{self.height}")


@dataclass(frozen=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True)
class Region:
    """Axis-aligned box: top-left corner plus extent."""

    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class Scale:
    """Independent per-axis linear scale between two coordinate spaces."""

    x: float
    y: float

    @classmethod
    def between(cls, native: Size, display: Size) -> Scale:
        return cls(x=display.width / native.width, y=display.height / native.height)

    def point(self, point: Point) -> Point:
        return Point(x=point.x * self.x, y=point.y * self.y)

    def region(self, region: Region) -> Region:
        return Region(
            x=region.x * self.x,
            y=region.y * self.y,
            width=region.width * self.x,
            height=region.height * self.y,
        )


@dataclass(frozen=True)
class Detection:
    """A single face result.

    ``landmarks`` and ``expressions`` are ``None`` when the provider did not
    compute them, which is distinct from an empty payload.
    """

    region: Region
    score: float = 1.0
    landmarks: tuple[Point, ...] | None = None
    expressions: dict[str, float] | None = None

    def rescaled(self, scale: Scale) -> Detection:
        landmarks = None
        if self.landmarks is not None:
            landmarks = tuple(scale.point(p) for p in self.landmarks)
        return replace(self, region=scale.region(self.region), landmarks=landmarks)


def rescale_detections(detections: list[Detection], native: Size, display: Size) -> list[Detection]:
    """Map a batch from native frame coordinates into display coordinates."""
    scale = Scale.between(native, display)
    return [d.rescaled(scale) for d in detections]
