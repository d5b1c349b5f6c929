import logging
from dataclasses import dataclass
from typing import List, Optional

from screeninfo import get_monitors
from screeninfo.common import ScreenInfoError


@dataclass(frozen=True)
class Display:
    id: int
    x: int
    y: int
    width: int
    height: int

    @property
    def is_primary(self) -> bool:
        return self.id == 0

    @property
    def geometry(self) -> str:
        return f"{self.width}x{self.height}{self.x:+d}{self.y:+d}"


def get_displays(root=None, logger: Optional[logging.Logger] = None) -> List[Display]:
    """Every connected display, primary first. Falls back to the Tk screen size."""
    try:
        monitors = sorted(get_monitors(), key=lambda m: not getattr(m, "is_primary", False))
        displays = [Display(i, m.x, m.y, m.width, m.height) for i, m in enumerate(monitors)]
        if displays:
            return displays
    except ScreenInfoError:
        if logger:
            logger.warning("Display enumeration failed, using primary screen only", exc_info=True)

    if root is not None:
        return [Display(0, 0, 0, root.winfo_screenwidth(), root.winfo_screenheight())]
    return []
