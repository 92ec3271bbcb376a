"""
Quality flag definitions and encoding.

Each pixel carries one 32-bit unsigned flag word. All bits except
``Valid_PE`` are produced by the retrieval model's internal range checks and
are passed through unchanged. ``Valid_PE`` is owned by the pipeline and set
whenever the valid pixel expression held for the pixel.

A cleared ``Valid_PE`` has two causes. Pixels failing the valid pixel
expression are still retrieved and keep the model bits. Pixels with a
non-positive source reflectance are not retrieved at all: their flag word
is 0 and all their values are NaN. Check the values to tell them apart.

Bits 0 and 1 are reserved for top-of-atmosphere checks which this processor
does not perform.
"""

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import numpy as np

from .constants import FLAG_BAND_NAME


@dataclass(frozen=True)
class FlagDefinition:
    """
    A named bit of the quality flag word.

    Attributes
    ----------
    name : str
        Flag name, usable in mask expressions as ``quality_flags.<name>``.
    bit : int
        Zero-based bit position in the 32-bit word.
    description : str
        Human-readable meaning of the bit.
    """

    name: str
    bit: int
    description: str

    @property
    def mask(self) -> int:
        """Integer mask of this flag."""
        return 1 << self.bit


@dataclass(frozen=True)
class FlagMask:
    """Display metadata for one flag, used to build image masks."""

    name: str
    expression: str
    description: str
    color: str
    transparency: float


_AT_MAX = (
    "output of the IOP retrieval neural net is at its maximum. "
    "This means that the true value is this value or higher."
)
_AT_MIN = (
    "output of the IOP retrieval neural net is at its minimum. "
    "This means that the true value is this value or lower."
)

#: The flag table, in presentation order
FLAG_TABLE: tuple = (
    FlagDefinition("Rhow_OOR", 2, "One of the inputs to the IOP retrieval neural net is out of training range"),
    FlagDefinition("Cloud_risk", 3, "High downwelling transmission is indicating cloudy conditions"),
    FlagDefinition("Iop_OOR", 4, "One of the IOPs is out of range"),
    FlagDefinition("Apig_at_max", 5, "Apig " + _AT_MAX),
    FlagDefinition("Adet_at_max", 6, "Adet " + _AT_MAX),
    FlagDefinition("Agelb_at_max", 7, "Agelb " + _AT_MAX),
    FlagDefinition("Bpart_at_max", 8, "Bpart " + _AT_MAX),
    FlagDefinition("Bwit_at_max", 9, "Bwit " + _AT_MAX),
    FlagDefinition("Apig_at_min", 10, "Apig " + _AT_MIN),
    FlagDefinition("Adet_at_min", 11, "Adet " + _AT_MIN),
    FlagDefinition("Agelb_at_min", 12, "Agelb " + _AT_MIN),
    FlagDefinition("Bpart_at_min", 13, "Bpart " + _AT_MIN),
    FlagDefinition("Bwit_at_min", 14, "Bwit " + _AT_MIN),
    FlagDefinition(
        "Rhow_OOS", 15,
        "The Rhow input spectrum to IOP neural net is probably not within the training "
        "range of the neural net, and the inversion is likely to be wrong.",
    ),
    FlagDefinition("Kd489_OOR", 16, "Kd489 is out of range"),
    FlagDefinition("Kdmin_OOR", 17, "Kdmin is out of range"),
    FlagDefinition("Kd489_at_max", 18, "Kd489 is at max"),
    FlagDefinition("Kdmin_at_max", 19, "Kdmin is at max"),
    FlagDefinition("Valid_PE", 31, "The operators valid pixel expression has resolved to true"),
)

#: Reserved bit positions (never emitted)
RESERVED_BITS: tuple = (0, 1)

_BY_NAME: Dict[str, FlagDefinition] = {flag.name: flag for flag in FLAG_TABLE}
_BY_BIT: Dict[int, FlagDefinition] = {flag.bit: flag for flag in FLAG_TABLE}

if len(_BY_NAME) != len(FLAG_TABLE) or len(_BY_BIT) != len(FLAG_TABLE):
    raise RuntimeError("Flag table reuses a name or a bit position")

#: Bit of the pipeline-owned validity flag
VALID_PE_BIT: int = _BY_NAME["Valid_PE"].bit
VALID_PE_MASK: int = 1 << VALID_PE_BIT

#: Cloud risk bit, displayed opaque
CLOUD_MASK: int = _BY_NAME["Cloud_risk"].mask

UINT32_MASK: int = 0xFFFFFFFF

MASK_COLORS: tuple = (
    "red", "orange", "yellow", "blue", "green", "pink", "magenta", "cyan", "gray",
)


def flag_mask(name: str) -> int:
    """
    Integer mask of a named flag.

    Raises
    ------
    KeyError
        If ``name`` is not a known flag.
    """
    return _BY_NAME[name].mask


def describe_flag(name: str) -> str:
    """Description of a named flag."""
    return _BY_NAME[name].description


def flag_at_bit(bit: int) -> Optional[FlagDefinition]:
    """Flag stored at ``bit``, or None for unused and reserved bits."""
    return _BY_BIT.get(bit)


def encode_flags(names: Iterable[str]) -> int:
    """
    Pack flag names into a flag word.

    Parameters
    ----------
    names : iterable of str
        Names of the flags to set.

    Returns
    -------
    int
        The flag word.

    Examples
    --------
    >>> encode_flags(["Cloud_risk", "Valid_PE"]) == (1 << 3) | (1 << 31)
    True
    """
    word = 0
    for name in names:
        word |= flag_mask(name)
    return word


def decode_flags(word: int) -> List[str]:
    """
    Names of the flags set in ``word``, in table order.

    Bits without a table entry are ignored.
    """
    word = int(word) & UINT32_MASK
    return [flag.name for flag in FLAG_TABLE if word & flag.mask]


def merge_validity(model_flags: int, valid: bool) -> int:
    """
    Combine the model's flag bits with the pipeline validity bit.

    The model's bits are kept as delivered; only ``Valid_PE`` is set or
    cleared.
    """
    word = int(model_flags) & UINT32_MASK & ~VALID_PE_MASK
    if valid:
        word |= VALID_PE_MASK
    return word


def is_valid(flags):
    """Boolean (array) telling where ``Valid_PE`` is set."""
    return (np.asarray(flags, dtype=np.uint32) & np.uint32(VALID_PE_MASK)) != 0


def mask_definitions(band_name: str = FLAG_BAND_NAME) -> List[FlagMask]:
    """
    Display masks for every flag of the table.

    The cloud risk mask is light gray and opaque; the others cycle through
    :data:`MASK_COLORS` with a transparency of 0.5.
    """
    masks = []
    for i, flag in enumerate(FLAG_TABLE):
        if flag.mask == CLOUD_MASK:
            color, transparency = "lightgray", 0.0
        else:
            color, transparency = MASK_COLORS[i % len(MASK_COLORS)], 0.5
        masks.append(FlagMask(
            name=flag.name,
            expression=f"{band_name}.{flag.name}",
            description=flag.description,
            color=color,
            transparency=transparency,
        ))
    return masks


def flag_coding_attrs() -> Dict[str, object]:
    """
    CF-convention attributes describing the flag band.

    Returns
    -------
    dict
        ``flag_masks``, ``flag_meanings`` and ``flag_descriptions`` entries.
    """
    return {
        "flag_masks": np.array([flag.mask for flag in FLAG_TABLE], dtype=np.uint32),
        "flag_meanings": " ".join(flag.name for flag in FLAG_TABLE),
        "flag_descriptions": "\t".join(flag.description for flag in FLAG_TABLE),
    }
