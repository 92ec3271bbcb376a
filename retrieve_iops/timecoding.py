"""
Acquisition time lookup.

Pixel times are expressed as Modified Julian Date 2000 (days since
2000-01-01T00:00:00 UTC) and interpolated linearly between the scene start
and stop times by image row.

Missing or unreadable times are not fatal: a warning is logged and the
pixel times become NaN.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Mapping, Optional, Union

import numpy as np

from .constants import PRODUCT_DATE_FORMAT

logger = logging.getLogger(__name__)

#: Reference epoch of MJD2000
MJD2000_EPOCH = datetime(2000, 1, 1, tzinfo=timezone.utc)

SECONDS_PER_DAY = 86400.0


def to_mjd2000(time: datetime) -> float:
    """
    Convert a datetime to MJD2000.

    Naive datetimes are taken as UTC.
    """
    if time.tzinfo is None:
        time = time.replace(tzinfo=timezone.utc)
    return (time - MJD2000_EPOCH).total_seconds() / SECONDS_PER_DAY


def parse_product_time(
    value: Optional[Union[str, datetime, np.datetime64]],
    name: str,
    fmt: str = PRODUCT_DATE_FORMAT,
) -> Optional[datetime]:
    """
    Parse a scene time attribute.

    Parameters
    ----------
    value : str, datetime or numpy.datetime64, optional
        Attribute value. Strings are parsed with ``fmt`` first and as ISO 8601
        second.
    name : str
        Attribute name, used in the warning.
    fmt : str, optional
        ``strptime`` format of the product metadata.

    Returns
    -------
    datetime or None
        The UTC time, or None (with a logged warning) if it could not be
        read.
    """
    if value is None:
        logger.warning("Could not retrieve %s from metadata", name)
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, np.datetime64):
        seconds = (value - np.datetime64("1970-01-01T00:00:00")) / np.timedelta64(1, "s")
        return datetime.fromtimestamp(float(seconds), tz=timezone.utc)

    text = str(value).strip()
    for parse in (lambda s: datetime.strptime(s, fmt),
                  lambda s: datetime.fromisoformat(s.replace("Z", "+00:00"))):
        try:
            parsed = parse(text)
        except ValueError:
            continue
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)

    logger.warning("Could not retrieve %s from metadata", name)
    return None


@dataclass(frozen=True)
class LineTimeCoding:
    """
    Row-wise linear time coding of a scene.

    Attributes
    ----------
    start_mjd, end_mjd : float
        MJD2000 of the first and last image row; NaN if unknown.
    height : int
        Number of image rows.
    start, end : datetime, optional
        The resolved UTC start and stop times, None if unknown.
    """

    start_mjd: float
    end_mjd: float
    height: int
    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def mjd(self, y: Union[int, np.ndarray]) -> Union[float, np.ndarray]:
        """MJD2000 at the centre of row ``y``."""
        if self.height <= 1:
            return self.start_mjd + 0.0 * np.asarray(y, dtype=np.float64)
        fraction = (np.asarray(y, dtype=np.float64) + 0.5) / self.height
        return self.start_mjd + fraction * (self.end_mjd - self.start_mjd)

    @property
    def known(self) -> bool:
        return bool(np.isfinite(self.start_mjd) and np.isfinite(self.end_mjd))


def scene_time_coding(attrs: Mapping[str, object], height: int) -> LineTimeCoding:
    """
    Build the time coding of a scene from its attributes.

    ``start_time`` / ``end_time`` are used when present, otherwise the
    product metadata ``PRODUCT_START_TIME`` / ``PRODUCT_STOP_TIME``. A
    missing stop time falls back to the start time.

    Parameters
    ----------
    attrs : mapping
        Scene attributes.
    height : int
        Number of image rows.

    Returns
    -------
    LineTimeCoding
        Time coding; yields NaN when no time is available.
    """
    start = attrs.get("start_time")
    end = attrs.get("end_time")
    if start is None:
        start = parse_product_time(attrs.get("PRODUCT_START_TIME"), "PRODUCT_START_TIME")
    else:
        start = parse_product_time(start, "start_time")
    if end is None:
        end = parse_product_time(attrs.get("PRODUCT_STOP_TIME"), "PRODUCT_STOP_TIME")
    else:
        end = parse_product_time(end, "end_time")

    if start is None:
        logger.warning("Scene has no acquisition time; pixel times are set to NaN")
        return LineTimeCoding(np.nan, np.nan, height)
    if end is None:
        end = start
    return LineTimeCoding(to_mjd2000(start), to_mjd2000(end), height, start, end)
