"""One Monokai color constants for the tasktree UI.

Components interpolate these into their CSS and rich styles, so the palette
lives in one place.
"""

# ============================================================================
# BASE COLORS
# ============================================================================

BACKGROUND = "#272822"  # Main application background
FOREGROUND = "#F8F8F2"  # Primary text color
SELECTION = "#49483E"   # Selected item background
COMMENT = "#75715E"     # Secondary/dimmed text
BORDER = "#3E3D32"      # Borders and dividers


# ============================================================================
# HIERARCHY COLORS
# ============================================================================

LEVEL_COLORS = [
    "#66D9EF",  # Root tasks
    "#A6E22E",  # First nesting level
    "#F92672",  # Second nesting level
    "#F3C300",
    "#875692",
    "#F38400",
    "#A1CAF1",
    "#BE0032",
]

LEVEL_0_COLOR = LEVEL_COLORS[0]
LEVEL_1_COLOR = LEVEL_COLORS[1]


# ============================================================================
# STATUS COLORS
# ============================================================================

YELLOW = "#E6DB74"          # Favorite star, partial progress
ORANGE = "#FD971F"          # Warnings, overdue tasks
RED = "#F92672"             # Load failures
COMPLETE_COLOR = "#75715E"  # Completed tasks

MODAL_OVERLAY_BG = "#27282280"


def get_level_color(depth: int) -> str:
    """
    Get the accent color for a nesting depth.

    Depths beyond the palette wrap around.

    Args:
        depth: Task depth (0 for root tasks)

    Returns:
        Hex color string
    """
    return LEVEL_COLORS[depth % len(LEVEL_COLORS)]
