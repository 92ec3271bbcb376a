"""
Output schema resolution.

The output of the retrieval is a stack of named bands. Which bands exist
depends on the feature toggles and on the number of spectral channels.
:func:`resolve_schema` turns both into an immutable :class:`OutputSchema`
holding, for every band, its slot in the per-pixel sample buffer.

Layout
------
Blocks are appended in a fixed order, each only if it is enabled:

1. corrected reflectance, ``n`` bands
2. normalized reflectance, ``n - 2`` bands
3. out-of-scope value, 1 band
4. IOPs, 5 bands, always present
5. attenuation coefficients, 2 bands
6. uncertainties, 8 bands, or 10 with attenuation coefficients
7. quality flags, 1 band, always last

The IOP block always starts at the single-channel offset ``2 * n``, even
when the blocks before it are disabled. Unused slots are not compacted, so
the IOP slots do not move when toggles change.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Sequence, Tuple, Union

from .constants import (
    AGGREGATE_UNCERTAINTY_NAMES,
    FLAG_BAND_NAME,
    IOP_NAMES,
    KD_NAMES,
    NORMALIZED_EXCLUDED_CHANNELS,
)
from .exceptions import ConfigurationError


@dataclass(frozen=True)
class FeatureToggles:
    """
    Output selection and reflectance conventions for a processing run.

    Attributes
    ----------
    output_ac_reflectance : bool
        Emit the atmospherically corrected reflectances. Default True.
    output_rhown : bool
        Emit the normalized water leaving reflectances. Default True.
    output_oos : bool
        Emit the out-of-scope value. Default False.
    output_kd : bool
        Emit the irradiance attenuation coefficients. Default True.
    output_uncertainties : bool
        Emit the uncertainties. Default True.
    input_as_rrs : bool
        Source reflectances are remote sensing reflectances instead of
        water leaving reflectances. Default True.
    output_as_rrs : bool
        Write remote sensing reflectances instead of water leaving
        reflectances. Default False.
    """

    output_ac_reflectance: bool = True
    output_rhown: bool = True
    output_oos: bool = False
    output_kd: bool = True
    output_uncertainties: bool = True
    input_as_rrs: bool = True
    output_as_rrs: bool = False


class OutputBlock(Enum):
    """Groups of output bands, in layout order."""

    AC_REFLECTANCE = "ac_reflectance"
    RHOWN = "rhown"
    OOS = "oos"
    IOP = "iop"
    KD = "kd"
    UNCERTAINTY = "uncertainty"
    FLAGS = "flags"


@dataclass(frozen=True)
class BlockLayout:
    """
    Position of one block in the sample buffer.

    Attributes
    ----------
    kind : OutputBlock
        The block.
    start : int
        Slot of the first band.
    names : tuple of str
        Band names; band ``i`` lives in slot ``start + i``.
    """

    kind: OutputBlock
    start: int
    names: Tuple[str, ...]

    @property
    def width(self) -> int:
        return len(self.names)

    @property
    def stop(self) -> int:
        """One past the last slot."""
        return self.start + self.width

    @property
    def slots(self) -> range:
        return range(self.start, self.stop)


@dataclass(frozen=True)
class OutputSchema:
    """
    Immutable mapping of output bands to sample slots.

    Built once per run by :func:`resolve_schema` and shared read-only by all
    pixel computations.

    Attributes
    ----------
    channel_names : tuple of str
        Spectral channels of the source scene, in order.
    toggles : FeatureToggles
        Toggles the layout was resolved for.
    blocks : tuple of BlockLayout
        Enabled blocks, in layout order.
    """

    channel_names: Tuple[str, ...]
    toggles: FeatureToggles
    blocks: Tuple[BlockLayout, ...]
    _slots: Dict[str, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        slots = {}
        for block in self.blocks:
            for slot, name in zip(block.slots, block.names):
                slots[name] = slot
        object.__setattr__(self, "_slots", slots)

    def __len__(self) -> int:
        """Number of output bands."""
        return len(self._slots)

    def __contains__(self, name) -> bool:
        return name in self._slots

    @property
    def channel_count(self) -> int:
        return len(self.channel_names)

    @property
    def single_offset(self) -> int:
        """Slot where the IOP block starts, ``2 * channel_count``."""
        return 2 * self.channel_count

    @property
    def slots(self) -> Dict[str, int]:
        """Band name -> slot, in band order."""
        return dict(self._slots)

    @property
    def band_names(self) -> Tuple[str, ...]:
        """Band names in output stack order."""
        return tuple(self._slots)

    @property
    def flag_slot(self) -> int:
        return self._slots[FLAG_BAND_NAME]

    @property
    def size(self) -> int:
        """Width of the sample buffer, including unused slots."""
        return self.flag_slot + 1

    def slot(self, name: str) -> int:
        """
        Slot of a band.

        Raises
        ------
        KeyError
            If the band is not part of this schema.
        """
        return self._slots[name]

    def band_index(self, name: str) -> int:
        """Position of a band in the output stack."""
        return self.band_names.index(name)

    def block(self, kind: OutputBlock) -> Optional[BlockLayout]:
        """Layout of a block, or None if the block is disabled."""
        for block in self.blocks:
            if block.kind is kind:
                return block
        return None

    def has_block(self, kind: OutputBlock) -> bool:
        return self.block(kind) is not None


def _channel_names(channels: Union[int, Sequence[str]]) -> Tuple[str, ...]:
    if isinstance(channels, int):
        if channels < 1:
            raise ConfigurationError(
                f"At least one spectral channel is required, got {channels}"
            )
        return tuple(f"b{i + 1}" for i in range(channels))

    names = tuple(channels)
    if not names:
        raise ConfigurationError("At least one spectral channel is required")
    if len(set(names)) != len(names):
        raise ConfigurationError(f"Spectral channel names must be unique: {names}")
    return names


def resolve_schema(
    channels: Union[int, Sequence[str]],
    toggles: Optional[FeatureToggles] = None,
) -> OutputSchema:
    """
    Resolve the output band layout.

    Parameters
    ----------
    channels : int or sequence of str
        Number of spectral channels, or their names. Channel names become
        part of the spectral band names (``rhow_<name>``); with a plain count
        the channels are named ``b1 .. bn``.
    toggles : FeatureToggles, optional
        Output selection. Defaults to ``FeatureToggles()``.

    Returns
    -------
    OutputSchema
        The resolved layout. Equal inputs give equal schemas.

    Raises
    ------
    ConfigurationError
        If there are no channels or channel names repeat.

    Examples
    --------
    >>> schema = resolve_schema(5, FeatureToggles(
    ...     output_ac_reflectance=False, output_rhown=False,
    ...     output_kd=False, output_uncertainties=False))
    >>> schema.slot("iop_apig")
    10
    """
    if toggles is None:
        toggles = FeatureToggles()
    names = _channel_names(channels)
    n = len(names)
    prefix = "rrs" if toggles.output_as_rrs else "rhow"

    blocks = []
    offset = 0

    def append(kind, start, block_names):
        blocks.append(BlockLayout(kind, start, tuple(block_names)))
        return start + len(block_names)

    if toggles.output_ac_reflectance:
        offset = append(
            OutputBlock.AC_REFLECTANCE, offset, [f"{prefix}_{c}" for c in names]
        )
    if toggles.output_rhown:
        n_norm = max(n - NORMALIZED_EXCLUDED_CHANNELS, 0)
        offset = append(
            OutputBlock.RHOWN, offset, [f"rhown_{c}" for c in names[:n_norm]]
        )
    if toggles.output_oos:
        offset = append(OutputBlock.OOS, offset, [f"oos_{prefix}"])

    # Fixed base, independent of the blocks above
    offset = append(OutputBlock.IOP, 2 * n, [f"iop_{c}" for c in IOP_NAMES])

    if toggles.output_kd:
        offset = append(OutputBlock.KD, offset, KD_NAMES)
    if toggles.output_uncertainties:
        unc_names = [f"unc_{c}" for c in IOP_NAMES + AGGREGATE_UNCERTAINTY_NAMES]
        if toggles.output_kd:
            unc_names += [f"unc_{c}" for c in KD_NAMES]
        offset = append(OutputBlock.UNCERTAINTY, offset, unc_names)

    append(OutputBlock.FLAGS, offset, [FLAG_BAND_NAME])

    return OutputSchema(channel_names=names, toggles=toggles, blocks=tuple(blocks))
