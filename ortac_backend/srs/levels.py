"""Level curve: XP thresholds and progress towards the next level."""

from dataclasses import dataclass

# XP required to reach each level; index 0 is level 1
LEVEL_THRESHOLDS: tuple[int, ...] = (
    0,
    100,
    250,
    500,
    800,
    1200,
    1700,
    2300,
    3000,
    3800,
    4700,
    5700,
    6800,
    8000,
    9300,
    10700,
    12200,
    13800,
    15500,
    17300,
    19200,
    21200,
    23300,
    25500,
    27800,
    30200,
    32700,
    35300,
    38000,
    40800,
    43700,
    46700,
    49800,
    53000,
    56300,
)

# Past the end of the table every level costs the same
XP_PER_LEVEL_BEYOND_TABLE = 5000


@dataclass(frozen=True)
class LevelProgress:
    level: int
    xp_into_level: int
    xp_for_next_level: int
    percent: int


def xp_threshold(level: int) -> int:
    """Return the total XP at which ``level`` is reached (level 1 is 0 XP)."""
    if level < 1:
        raise ValueError(f"level must be >= 1, got {level}")
    if level <= len(LEVEL_THRESHOLDS):
        return LEVEL_THRESHOLDS[level - 1]
    extra = level - len(LEVEL_THRESHOLDS)
    return LEVEL_THRESHOLDS[-1] + extra * XP_PER_LEVEL_BEYOND_TABLE


def level_for_xp(total_xp: int) -> int:
    """Return the largest level whose threshold is <= total_xp."""
    total_xp = max(0, total_xp)
    top = LEVEL_THRESHOLDS[-1]
    if total_xp >= top:
        return len(LEVEL_THRESHOLDS) + (total_xp - top) // XP_PER_LEVEL_BEYOND_TABLE
    level = 1
    for i, threshold in enumerate(LEVEL_THRESHOLDS):
        if total_xp >= threshold:
            level = i + 1
        else:
            break
    return level


def level_progress(total_xp: int) -> LevelProgress:
    level = level_for_xp(total_xp)
    floor = xp_threshold(level)
    needed = xp_threshold(level + 1) - floor
    into = total_xp - floor
    return LevelProgress(
        level=level,
        xp_into_level=into,
        xp_for_next_level=needed,
        percent=min(100, into * 100 // needed),
    )
