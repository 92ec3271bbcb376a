"""
Processing parameters of an IOP retrieval run.
"""

from dataclasses import dataclass, field, fields
from typing import Any, Mapping, Optional, Tuple

from . import constants
from .exceptions import ConfigurationError
from .schema import FeatureToggles


@dataclass(frozen=True)
class RetrievalParameters:
    """
    Parameters of a retrieval run.

    Read once before processing starts and not changed afterwards.

    Attributes
    ----------
    surface_reflectance_bands : tuple of str
        Source reflectance bands, in spectral order. Required.
    valid_pixel_expression : str, optional
        Name of a boolean source raster selecting the pixels to process.
        All pixels are valid if None.
    salinity : float
        Scene salinity [PSU]. Default is 35.0.
    temperature : float
        Scene water temperature [°C]. Default is 15.0.
    tsm_fac, tsm_exp : float
        TSM = tsm_fac * iop_btot ** tsm_exp. Defaults 1.72 and 3.1.
    chl_exp, chl_fac : float
        CHL = iop_apig ** chl_exp * chl_fac. Defaults 1.04 and 21.0.
    threshold_ac_reflec_oos : float
        Out-of-scope threshold for the corrected reflectances. Default 0.1.
    alternative_nn_path : str, optional
        Directory with an alternative set of neural nets.
    net_set : str
        Built-in set of neural nets. Default is ``"C2RCC-Nets"``.
    toggles : FeatureToggles
        Output selection and reflectance conventions.
    """

    surface_reflectance_bands: Tuple[str, ...] = ()
    valid_pixel_expression: Optional[str] = None
    salinity: float = constants.DEFAULT_SALINITY
    temperature: float = constants.DEFAULT_TEMPERATURE
    tsm_fac: float = constants.DEFAULT_TSM_FACTOR
    tsm_exp: float = constants.DEFAULT_TSM_EXPONENT
    chl_exp: float = constants.DEFAULT_CHL_EXPONENT
    chl_fac: float = constants.DEFAULT_CHL_FACTOR
    threshold_ac_reflec_oos: float = constants.DEFAULT_OOS_THRESHOLD
    alternative_nn_path: Optional[str] = None
    net_set: str = constants.STANDARD_NETS
    toggles: FeatureToggles = field(default_factory=FeatureToggles)

    def __post_init__(self):
        if isinstance(self.surface_reflectance_bands, str):
            bands = (self.surface_reflectance_bands,)
        else:
            bands = tuple(self.surface_reflectance_bands or ())
        object.__setattr__(self, "surface_reflectance_bands", bands)

        if not bands:
            raise ConfigurationError("The surface reflectance bands are required.")
        if len(set(bands)) != len(bands):
            raise ConfigurationError(f"Surface reflectance bands repeat: {bands}")

        _check_interval("salinity", self.salinity, constants.SALINITY_RANGE, "PSU")
        _check_interval("temperature", self.temperature, constants.TEMPERATURE_RANGE, "C")

        if not self.alternative_nn_path and self.net_set not in constants.NET_SETS:
            raise ConfigurationError(
                f"Unknown set '{self.net_set}' of neural nets specified. "
                f"Available: {sorted(constants.NET_SETS)}"
            )

    @property
    def channel_count(self) -> int:
        return len(self.surface_reflectance_bands)

    @classmethod
    def from_dict(cls, values: Mapping[str, Any]) -> "RetrievalParameters":
        """
        Build parameters from a flat mapping.

        Keys naming :class:`FeatureToggles` fields are collected into
        ``toggles``; any other unknown key raises.

        Raises
        ------
        ConfigurationError
            For unknown keys or invalid values.
        """
        own = {f.name for f in fields(cls)}
        toggle_names = {f.name for f in fields(FeatureToggles)}

        kwargs = {}
        toggle_kwargs = {}
        for key, value in values.items():
            if key in toggle_names:
                toggle_kwargs[key] = bool(value)
            elif key in own:
                kwargs[key] = value
            else:
                raise ConfigurationError(f"Unknown parameter '{key}'")

        if toggle_kwargs:
            if "toggles" in kwargs:
                raise ConfigurationError(
                    "Give either 'toggles' or individual toggle parameters, not both"
                )
            kwargs["toggles"] = FeatureToggles(**toggle_kwargs)
        return cls(**kwargs)


def _check_interval(name, value, interval, unit):
    low, high = interval
    if not low < value < high:
        raise ConfigurationError(
            f"Parameter '{name}' must be in ({low}, {high}) {unit}, got {value}"
        )
