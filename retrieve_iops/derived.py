"""
Virtual bands: quantities derived from the stored retrieval outputs.

Aggregate IOPs, constituent concentrations and the penetration depth are
not produced by the retrieval model. They are computed here from the stored
bands, on demand.

The uncertainty of a derived quantity is the same formula applied to the
uncertainties of its inputs. This is a linear approximation and not a full
error propagation; downstream products rely on these exact definitions.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Tuple, Union

import numpy as np

from .schema import FeatureToggles

ArrayLike = Union[float, np.ndarray]


def adg(adet: ArrayLike, agelb: ArrayLike) -> ArrayLike:
    """Detritus + gelbstoff absorption at 443 nm [m^-1]."""
    return np.add(adet, agelb)


def atot(apig: ArrayLike, adet: ArrayLike, agelb: ArrayLike) -> ArrayLike:
    """Phytoplankton + detritus + gelbstoff absorption at 443 nm [m^-1]."""
    return np.add(np.add(apig, adet), agelb)


def btot(bpart: ArrayLike, bwit: ArrayLike) -> ArrayLike:
    """Total particle scattering at 443 nm [m^-1]."""
    return np.add(bpart, bwit)


def tsm_concentration(btot_value: ArrayLike, factor: float, exponent: float) -> ArrayLike:
    """
    Total suspended matter dry weight concentration [g m^-3].

    Parameters
    ----------
    btot_value : float or array_like
        Total scattering ``iop_btot`` [m^-1].
    factor, exponent : float
        TSM = factor * btot ** exponent.
    """
    with np.errstate(invalid="ignore"):
        return factor * np.power(btot_value, exponent)


def chl_concentration(apig: ArrayLike, exponent: float, factor: float) -> ArrayLike:
    """
    Chlorophyll concentration [mg m^-3].

    CHL = apig ** exponent * factor.
    """
    with np.errstate(invalid="ignore"):
        return np.power(apig, exponent) * factor


def z90_max(kdmin: ArrayLike) -> ArrayLike:
    """
    Depth of the water column from which 90% of the water leaving
    irradiance comes [m], the reciprocal of ``kdmin``.
    """
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.divide(1.0, kdmin)


def unc_z90_max(kdmin: ArrayLike, unc_kdmin: ArrayLike) -> ArrayLike:
    """
    Uncertainty of :func:`z90_max`.

    ``|z90 - 1 / |kdmin - unc_kdmin||``
    """
    with np.errstate(divide="ignore", invalid="ignore"):
        return np.abs(z90_max(kdmin) - 1.0 / np.abs(np.subtract(kdmin, unc_kdmin)))


@dataclass(frozen=True)
class VirtualBand:
    """
    Definition of a derived band.

    Attributes
    ----------
    name : str
        Band name.
    unit : str
        Physical unit.
    description : str
        Band description.
    inputs : tuple of str
        Stored (or previously derived) bands the formula reads.
    uncertainty_of : str or None
        Name of the band this band is the uncertainty of.
    """

    name: str
    unit: str
    description: str
    inputs: Tuple[str, ...]
    uncertainty_of: Union[str, None] = None


_IOP_BANDS = [
    VirtualBand("iop_adg", "m^-1", "Detritus + gelbstoff absorption at 443 nm",
                ("iop_adet", "iop_agelb")),
    VirtualBand("iop_atot", "m^-1", "phytoplankton + detritus + gelbstoff absorption at 443 nm",
                ("iop_apig", "iop_adet", "iop_agelb")),
    VirtualBand("iop_btot", "m^-1", "total particle scattering at 443 nm",
                ("iop_bpart", "iop_bwit")),
]
_KD_BANDS = [
    VirtualBand("kd_z90max", "m",
                "Depth of the water column from which 90% of the water leaving irradiance comes from",
                ("kdmin",)),
]
_CONC_BANDS = [
    VirtualBand("conc_tsm", "g m^-3", "Total suspended matter dry weight concentration",
                ("iop_btot",)),
    VirtualBand("conc_chl", "mg m^-3", "Chlorophyll concentration", ("iop_apig",)),
]
_UNC_CONC_BANDS = [
    VirtualBand("unc_tsm", "g m^-3",
                "Uncertainty of total suspended matter (TSM) dry weight concentration",
                ("unc_btot",), uncertainty_of="conc_tsm"),
    VirtualBand("unc_chl", "mg m^-3", "Uncertainty of chlorophyll concentration",
                ("unc_apig",), uncertainty_of="conc_chl"),
]
_UNC_KD_BANDS = [
    VirtualBand("unc_kd_z90max", "m",
                "Uncertainty of depth of the water column from which 90% of the water "
                "leaving irradiance comes from",
                ("kdmin", "unc_kdmin"), uncertainty_of="kd_z90max"),
]


def virtual_bands(toggles: FeatureToggles) -> List[VirtualBand]:
    """
    Derived bands available for a run, in evaluation order.

    Aggregate IOPs and concentrations always exist; the penetration depth
    needs the attenuation coefficients, and the uncertainty bands need the
    uncertainties (and, for the depth, the attenuation coefficients too).
    """
    bands = list(_IOP_BANDS)
    if toggles.output_kd:
        bands += _KD_BANDS
    bands += _CONC_BANDS
    if toggles.output_uncertainties:
        bands += _UNC_CONC_BANDS
        if toggles.output_kd:
            bands += _UNC_KD_BANDS
    return bands


def virtual_band_names(toggles: FeatureToggles) -> List[str]:
    return [band.name for band in virtual_bands(toggles)]


def _formulas(parameters) -> Dict[str, Callable[..., ArrayLike]]:
    return {
        "iop_adg": adg,
        "iop_atot": atot,
        "iop_btot": btot,
        "kd_z90max": z90_max,
        "conc_tsm": lambda b: tsm_concentration(b, parameters.tsm_fac, parameters.tsm_exp),
        "conc_chl": lambda a: chl_concentration(a, parameters.chl_exp, parameters.chl_fac),
        "unc_tsm": lambda b: tsm_concentration(b, parameters.tsm_fac, parameters.tsm_exp),
        "unc_chl": lambda a: chl_concentration(a, parameters.chl_exp, parameters.chl_fac),
        "unc_kd_z90max": unc_z90_max,
    }


def compute_virtual_bands(
    bands: Mapping[str, ArrayLike],
    parameters,
) -> Dict[str, ArrayLike]:
    """
    Evaluate all derived bands of a run.

    Parameters
    ----------
    bands : mapping
        Stored band name -> values.
    parameters : RetrievalParameters
        Supplies the toggles and the TSM / CHL coefficients.

    Returns
    -------
    dict
        Derived band name -> values, in :func:`virtual_bands` order.

    Raises
    ------
    KeyError
        If a required stored band is missing.
    """
    formulas = _formulas(parameters)
    available = dict(bands)
    derived = {}
    for band in virtual_bands(parameters.toggles):
        values = formulas[band.name](*(available[name] for name in band.inputs))
        derived[band.name] = values
        available[band.name] = values
    return derived
