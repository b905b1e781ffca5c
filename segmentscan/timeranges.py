"""Turn sparse matched timestamps into a single time range."""

from typing import Sequence

from .models import TimeRange


def find_contiguous(times: Sequence[float], maximum_distance: float) -> TimeRange:
    """Find the longest contiguous run of timestamps.

    The timestamps are split into runs wherever two neighbours are more than
    ``maximum_distance`` seconds apart. The run spanning the most time wins,
    even if a shorter run elsewhere is denser. When several runs share the
    longest duration, the earliest one is returned.

    Args:
        times: Matched timestamps in seconds.
        maximum_distance: Largest gap (in seconds) allowed inside one run.

    Returns:
        The longest run as a TimeRange, or an empty TimeRange if there are
        no timestamps.
    """
    if not times:
        return TimeRange()

    ordered = sorted(times)
    ranges: list[TimeRange] = []
    current = TimeRange(start=ordered[0], end=ordered[0])

    for previous, following in zip(ordered, ordered[1:]):
        if following - previous <= maximum_distance:
            current.end = following
            continue

        ranges.append(current)
        current = TimeRange(start=following, end=following)

    ranges.append(current)

    return sorted(ranges)[0]
