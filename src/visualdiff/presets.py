"""Highlight presets and color helpers."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, Mapping, Optional, Tuple

Color = Tuple[float, float, float]


@dataclass(frozen=True)
class ColorScheme:
    """RGB color palette used for highlights."""

    added: Color = (0.0, 0.73, 0.0)
    removed: Color = (0.84, 0.0, 0.0)
    modified: Color = (0.93, 0.63, 0.0)

    def for_classification(self, classification: str) -> Color:
        if classification == "added":
            return self.added
        if classification == "removed":
            return self.removed
        return self.modified

    def with_overrides(
        self,
        *,
        added: Optional[Color] = None,
        removed: Optional[Color] = None,
        modified: Optional[Color] = None,
    ) -> "ColorScheme":
        return ColorScheme(
            added=added or self.added,
            removed=removed or self.removed,
            modified=modified or self.modified,
        )

    def to_dict(self) -> Dict[str, Color]:
        return {"added": self.added, "removed": self.removed, "modified": self.modified}


@dataclass(frozen=True)
class Preset:
    """Styling used when highlights are burned into a document."""

    name: str
    description: str
    colors: ColorScheme
    fill_opacity: float = 0.22
    stroke_width: float = 0.8
    padding_pts: float = 1.0

    def to_dict(self) -> Dict[str, object]:
        return {
            "name": self.name,
            "description": self.description,
            "colors": self.colors.to_dict(),
            "fill_opacity": self.fill_opacity,
            "stroke_width": self.stroke_width,
            "padding_pts": self.padding_pts,
        }


_DEFAULT_COLORS = ColorScheme()

PRESETS: Mapping[str, Preset] = {
    "default": Preset(
        name="default",
        description="Translucent fills with a thin outline.",
        colors=_DEFAULT_COLORS,
    ),
    "subtle": Preset(
        name="subtle",
        description="Light fills without outline; keeps text readable when printed.",
        colors=_DEFAULT_COLORS,
        fill_opacity=0.12,
        stroke_width=0.0,
        padding_pts=0.5,
    ),
    "bold": Preset(
        name="bold",
        description="Strong fills for reviewing on screen.",
        colors=_DEFAULT_COLORS,
        fill_opacity=0.35,
        stroke_width=1.2,
        padding_pts=1.5,
    ),
}


def get_preset(name: str) -> Preset:
    key = name.lower()
    if key not in PRESETS:
        raise KeyError(f"Unknown preset '{name}'. Available: {', '.join(sorted(PRESETS))}")
    return PRESETS[key]


def iter_presets() -> Iterable[Preset]:
    return PRESETS.values()


def _hex_channels(hex_value: str) -> Color:
    if len(hex_value) == 3:
        hex_value = "".join(ch * 2 for ch in hex_value)
    if len(hex_value) not in (6, 8):
        raise ValueError(f"Hex colour '#{hex_value}' must be #RGB, #RRGGBB or #RRGGBBAA")
    r, g, b = (int(hex_value[i : i + 2], 16) / 255.0 for i in range(0, 6, 2))
    return (r, g, b)


def parse_color(value: Optional[str]) -> Optional[Color]:
    """Parse ``#RRGGBB`` or ``r,g,b`` (0-1 or 0-255) into an RGB tuple.

    Empty values mean "keep the preset colour" and return ``None``.
    """

    if value is None or not value.strip():
        return None
    value = value.strip()
    if value.startswith("#"):
        return _hex_channels(value[1:])
    parts = [p.strip() for p in value.replace(";", ",").split(",")]
    if len(parts) != 3:
        raise ValueError(f"Colour '{value}' must have three comma separated channels")
    r, g, b = (float(p) for p in parts)
    scale = 255.0 if max(r, g, b) > 1.0 else 1.0
    channels = (r / scale, g / scale, b / scale)
    if any(not 0.0 <= c <= 1.0 for c in channels):
        raise ValueError(f"Colour '{value}' has channels outside 0-255")
    return channels
