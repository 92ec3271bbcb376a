"""
Per-pixel retrieval.

Prepares the retrieval model inputs of one pixel, calls the model once and
scatters its results into the slots of an :class:`~retrieve_iops.schema.OutputSchema`.

Reflectance conventions
-----------------------
Source and output reflectances are either water leaving reflectances
(rhow) or remote sensing reflectances (rrs), related by a factor of π.
Remote sensing input is divided by π before the logarithm is taken; remote
sensing output is the model's reflectance multiplied by π.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Union

import numpy as np

from .flags import merge_validity
from .model import ModelInput, RetrievalModel, RetrievalResult, check_result_shape
from .schema import OutputBlock, OutputSchema


@dataclass(frozen=True)
class PixelGeometry:
    """
    Sun and view angles of one pixel [degrees].

    Attributes
    ----------
    sun_zenith, sun_azimuth : float
        Solar zenith and azimuth angles.
    view_zenith, view_azimuth : float
        Sensor viewing zenith and azimuth angles.
    """

    sun_zenith: float
    sun_azimuth: float
    view_zenith: float
    view_azimuth: float


@dataclass(frozen=True)
class PixelSample:
    """
    Source values of one pixel.

    Attributes
    ----------
    x, y : int
        Pixel position in the scene.
    latitude, longitude : float
        Pixel geolocation [degrees].
    geometry : PixelGeometry
        Sun and view angles of the pixel.
    reflectances : ndarray
        Raw source reflectances, one per spectral channel.
    valid : bool
        Result of the valid pixel expression.
    time : float
        Acquisition time as MJD2000, NaN if unknown.
    """

    x: int
    y: int
    latitude: float
    longitude: float
    geometry: PixelGeometry
    reflectances: np.ndarray
    valid: bool = True
    time: float = np.nan


def log_reflectances(
    reflectances: Union[float, np.ndarray],
    input_as_rrs: bool,
) -> np.ndarray:
    """
    Natural logarithm of the source reflectances, as fed to the model.

    Parameters
    ----------
    reflectances : float or array_like
        Source reflectances.
    input_as_rrs : bool
        True if the source holds remote sensing reflectances; they are
        divided by π before the logarithm.

    Returns
    -------
    ndarray
        Log reflectances. Zero gives ``-inf``, negative values give NaN;
        no warning is raised for either.
    """
    values = np.asarray(reflectances, dtype=np.float64)
    if input_as_rrs:
        values = values / np.pi
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.log(values)


def to_output_convention(
    reflectances: Union[float, np.ndarray],
    output_as_rrs: bool,
) -> Union[float, np.ndarray]:
    """
    Convert model reflectances to the output convention.

    Multiplies by π for remote sensing output, identity otherwise.
    """
    if output_as_rrs:
        return np.asarray(reflectances, dtype=np.float64) * np.pi
    return np.asarray(reflectances, dtype=np.float64)


def from_output_convention(
    reflectances: Union[float, np.ndarray],
    output_as_rrs: bool,
) -> Union[float, np.ndarray]:
    """Inverse of :func:`to_output_convention`."""
    if output_as_rrs:
        return np.asarray(reflectances, dtype=np.float64) / np.pi
    return np.asarray(reflectances, dtype=np.float64)


def model_input(
    sample: PixelSample,
    log_refl: np.ndarray,
    solar_flux: Optional[np.ndarray] = None,
) -> ModelInput:
    """Assemble the model inputs of a pixel."""
    if solar_flux is None:
        solar_flux = np.zeros(len(log_refl))
    geometry = sample.geometry
    return ModelInput(
        x=sample.x,
        y=sample.y,
        latitude=float(sample.latitude),
        longitude=float(sample.longitude),
        log_reflectances=log_refl,
        solar_flux=np.asarray(solar_flux, dtype=np.float64),
        sun_zenith=float(geometry.sun_zenith),
        sun_azimuth=float(geometry.sun_azimuth),
        view_zenith=float(geometry.view_zenith),
        view_azimuth=float(geometry.view_azimuth),
        valid=bool(sample.valid),
        elevation=0.0,
        pressure=0.0,
        ozone=0.0,
    )


def scatter_result(
    result: RetrievalResult,
    schema: OutputSchema,
    valid: bool,
) -> Dict[int, float]:
    """
    Place a model result into the slots of ``schema``.

    Only enabled blocks are written; the IOP block and the flag word always
    are. Attenuation uncertainties are written only when the attenuation
    coefficients themselves are enabled.

    Parameters
    ----------
    result : RetrievalResult
        Model output.
    schema : OutputSchema
        Resolved output layout.
    valid : bool
        Pipeline validity, merged into the flag word as ``Valid_PE``.

    Returns
    -------
    dict
        Slot -> value.
    """
    toggles = schema.toggles
    out: Dict[int, float] = {}

    def put(kind, values):
        block = schema.block(kind)
        if block is None:
            return
        for slot, value in zip(block.slots, values):
            out[slot] = float(value)

    put(OutputBlock.AC_REFLECTANCE, to_output_convention(result.rwa, toggles.output_as_rrs))
    put(OutputBlock.RHOWN, to_output_convention(result.rwn, toggles.output_as_rrs))
    put(OutputBlock.OOS, [result.rwa_oos])
    put(OutputBlock.IOP, result.iops)
    put(OutputBlock.KD, [result.kd489, result.kdmin])

    if schema.has_block(OutputBlock.UNCERTAINTY):
        unc = list(result.unc_iops) + [result.unc_adg, result.unc_atot, result.unc_btot]
        if schema.has_block(OutputBlock.KD):
            unc += [result.unc_kd489, result.unc_kdmin]
        put(OutputBlock.UNCERTAINTY, unc)

    out[schema.flag_slot] = merge_validity(result.flags, valid)
    return out


def compute_pixel(
    sample: PixelSample,
    schema: OutputSchema,
    model: RetrievalModel,
    solar_flux: Optional[np.ndarray] = None,
) -> Dict[int, float]:
    """
    Run the retrieval for one pixel.

    Parameters
    ----------
    sample : PixelSample
        Source values of the pixel.
    schema : OutputSchema
        Resolved output layout; its toggles select the reflectance
        conventions and the emitted blocks.
    model : RetrievalModel
        Shared retrieval model, called once.
    solar_flux : ndarray, optional
        Solar flux per channel. All zero if not given.

    Returns
    -------
    dict
        Slot -> value for every band of ``schema``.

    Notes
    -----
    A non-positive source reflectance has no finite logarithm. Such a pixel
    is not passed to the model: all values are NaN and the flag word is 0.
    A pixel failing the valid pixel expression also has ``Valid_PE``
    cleared but still carries model outputs, so the two cases differ only
    by the NaN values.
    """
    n = schema.channel_count
    if len(sample.reflectances) != n:
        raise ValueError(
            f"Pixel has {len(sample.reflectances)} reflectances, schema expects {n}"
        )

    log_refl = log_reflectances(sample.reflectances, schema.toggles.input_as_rrs)
    if not np.all(np.isfinite(log_refl)):
        return scatter_result(RetrievalResult.invalid(n), schema, valid=False)

    result = model.process_pixel(model_input(sample, log_refl, solar_flux))
    check_result_shape(result, n)
    return scatter_result(result, schema, valid=sample.valid)


def write_pixel(values: Dict[int, float], out: np.ndarray, y: int, x: int) -> None:
    """
    Write a pixel's slot values into a ``(size, ny, nx)`` buffer.
    """
    for slot, value in values.items():
        out[slot, y, x] = value

