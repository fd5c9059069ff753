"""
Hazard Layout Presets
Fixed hazard placements for the balance board. Each preset returns the hazard
centers in screen coordinates; the controller turns them into sensor bodies.
"""

import math

# Playfield band the hazards are laid out in (between the two pins)
FIELD_LEFT = 200.0
FIELD_RIGHT = 600.0
FIELD_TOP = 100.0
FIELD_BOTTOM = 500.0


class HazardLayout:
    """Each preset returns a list of (x, y) hazard centers in iteration order."""

    @staticmethod
    def reference() -> list:
        """Full 25-hazard board: first board, 4x4 grid, corners, center column."""
        positions = [
            # first board
            (300.0, 200.0), (500.0, 200.0), (400.0, 400.0),
        ]
        # grid, row by row
        for y in (150.0, 250.0, 350.0, 450.0):
            for x in (250.0, 350.0, 450.0, 550.0):
                positions.append((x, y))
        # corners
        positions += [(220.0, 120.0), (580.0, 120.0), (220.0, 480.0), (580.0, 480.0)]
        # center
        positions += [(400.0, 200.0), (400.0, 300.0)]
        return positions

    @staticmethod
    def classic() -> list:
        """The three hazards of the first board."""
        return [(300.0, 200.0), (500.0, 200.0), (400.0, 400.0)]

    @staticmethod
    def ring(count: int = 12, radius: float = 170.0) -> list:
        """Hazards evenly spaced on a circle around the board center."""
        cx = (FIELD_LEFT + FIELD_RIGHT) / 2
        cy = (FIELD_TOP + FIELD_BOTTOM) / 2
        positions = []
        for i in range(count):
            theta = 2 * math.pi * i / count
            positions.append((round(cx + radius * math.cos(theta), 3),
                              round(cy + radius * math.sin(theta), 3)))
        return positions


# Layouts selectable by name (and by keys 1-3 in the front-ends)
LAYOUTS = {
    "reference": HazardLayout.reference,
    "classic":   HazardLayout.classic,
    "ring":      HazardLayout.ring,
}

LAYOUT_KEYS = {
    "1": "reference",
    "2": "classic",
    "3": "ring",
}

DEFAULT_LAYOUT = "reference"


def get_layout(name: str) -> list:
    """Return the hazard centers for a named layout."""
    try:
        factory = LAYOUTS[name]
    except KeyError:
        raise KeyError(f"unknown hazard layout {name!r}; known: {sorted(LAYOUTS)}") from None
    return factory()
