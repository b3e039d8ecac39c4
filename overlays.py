"""Overlay catalogue.

Maps the closed set of overlay labels (and an optional strain variant) to the
overlay file drawn on top of the token artwork. `overlay_path` is total: every
(overlay, variant) pair yields a path, or None for the "None" overlay.
"""

from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Union

from config import OVERLAY_DIR


class Overlay(str, Enum):
    NONE = "None"
    WEED_GREEN = "Weed Green"
    PURPLE_HAZE = "Purple Haze"
    ACAPULCO_GOLD = "Acapulco Gold"

    @property
    def slug(self) -> str:
        """Lower-cased, hyphenated label used in download filenames."""
        if self is Overlay.NONE:
            return "no-overlay"
        return "-".join(self.value.lower().split())


class Strain(str, Enum):
    INDICA = "Indica"
    SATIVA = "Sativa"
    HYBRID = "Hybrid"


# File stem per overlay; variants live next to it as "<stem>-<Strain>.png".
OVERLAY_STEMS: Dict[Overlay, Optional[str]] = {
    Overlay.NONE: None,
    Overlay.WEED_GREEN: "WeedGreen",
    Overlay.PURPLE_HAZE: "PurpleHaze",
    Overlay.ACAPULCO_GOLD: "AcapulcoGold",
}


def parse_overlay(label: Union[str, Overlay, None]) -> Overlay:
    """Accepts a label, an Overlay, or None (treated as the "None" overlay)."""
    if label is None or label == "":
        return Overlay.NONE
    if isinstance(label, Overlay):
        return label
    return Overlay(label)


def parse_strain(value: Optional[str]) -> Optional[Strain]:
    """Case-insensitive strain lookup; unknown values map to None."""
    if not value:
        return None
    wanted = value.strip().lower()
    for strain in Strain:
        if strain.value.lower() == wanted:
            return strain
    return None


def overlay_path(
    overlay: Union[str, Overlay, None],
    variant: Optional[str] = None,
    overlay_dir: Optional[Path] = None,
) -> Optional[Path]:
    """Returns the overlay file for (overlay, variant), or None for no overlay.

    Unknown variants, and variants without their own file on disk, fall back
    to the overlay's default file. Raises ValueError for a label outside the
    catalogue.
    """
    stem = OVERLAY_STEMS[parse_overlay(overlay)]
    if stem is None:
        return None

    base_dir = Path(overlay_dir) if overlay_dir is not None else OVERLAY_DIR
    default = base_dir / f"{stem}.png"
    strain = parse_strain(variant)
    if strain is None:
        return default
    candidate = base_dir / f"{stem}-{strain.value}.png"
    return candidate if candidate.exists() else default
