"""Plain geometric value types shared by the planner and the VRT writers"""
from __future__ import annotations

import dataclasses
import typing


class Size(typing.NamedTuple):
    width: int
    height: int

    def __str__(self) -> str:
        return f"{self.width}x{self.height}"

    @property
    def area(self) -> int:
        return self.width * self.height


class Point(typing.NamedTuple):
    x: int
    y: int


@dataclasses.dataclass
class Extents:
    """Geographic extents, lower-left and upper-right corners"""

    llx: float
    lly: float
    urx: float
    ury: float

    @property
    def width(self) -> float:
        return self.urx - self.llx

    @property
    def height(self) -> float:
        return self.ury - self.lly

    @property
    def upper_left(self) -> tuple[float, float]:
        return self.llx, self.ury

    @classmethod
    def from_geotransform(cls, geotransform: typing.Sequence[float], size: Size) -> "Extents":
        """Extents of a north-up raster"""
        ulx, px_width, _, uly, _, px_height = geotransform
        return cls(
            ulx,
            uly + px_height * size.height,
            ulx + px_width * size.width,
            uly,
        )

    def geotransform(self, size: Size) -> list[float]:
        return [
            self.llx,
            self.width / size.width,
            0.0,
            self.ury,
            0.0,
            -self.height / size.height,
        ]

    def __str__(self) -> str:
        return f"{self.llx:f},{self.lly:f}:{self.urx:f},{self.ury:f}"


@dataclasses.dataclass
class Rect:
    """Integer pixel window: origin and size"""

    origin: Point = Point(0, 0)
    size: Size = Size(0, 0)

    @classmethod
    def whole(cls, size: Size) -> "Rect":
        return cls(Point(0, 0), size)
