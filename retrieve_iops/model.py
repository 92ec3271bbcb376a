"""
Interface to the retrieval model.

The retrieval model is a pretrained set of neural networks mapping a
geometry and reflectance feature vector to IOPs, corrected reflectances,
attenuation coefficients and uncertainties. Its internals are out of scope
here: this module defines the data exchanged with it, resolves which network
files it is built from, and constructs it once per run through a caller
supplied factory.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Union

import numpy as np

from .constants import IOP_COUNT, NET_ROLES, NET_SETS, NORMALIZED_EXCLUDED_CHANNELS
from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelInput:
    """
    Inputs of one retrieval model call.

    Attributes
    ----------
    x, y : int
        Pixel position in the scene.
    latitude, longitude : float
        Pixel geolocation [degrees].
    log_reflectances : ndarray
        Natural logarithm of the water leaving reflectances, one per channel.
    solar_flux : ndarray
        Extraterrestrial solar flux per channel. Unused by the reflectance
        networks and therefore all zero by default.
    sun_zenith, sun_azimuth, view_zenith, view_azimuth : float
        Geometry [degrees].
    valid : bool
        Result of the valid pixel expression.
    elevation, pressure, ozone : float
        Placeholders, fixed at 0.0 for surface reflectance input.
    """

    x: int
    y: int
    latitude: float
    longitude: float
    log_reflectances: np.ndarray
    solar_flux: np.ndarray
    sun_zenith: float
    sun_azimuth: float
    view_zenith: float
    view_azimuth: float
    valid: bool
    elevation: float = 0.0
    pressure: float = 0.0
    ozone: float = 0.0

    def feature_vector(self) -> np.ndarray:
        """
        The inputs flattened in the model's fixed order.

        ``[lat, lon, log_refl..., solar_flux..., sun_zen, sun_azi, view_zen,
        view_azi, elevation, valid, pressure, ozone]``
        """
        return np.concatenate([
            [self.latitude, self.longitude],
            np.asarray(self.log_reflectances, dtype=np.float64),
            np.asarray(self.solar_flux, dtype=np.float64),
            [
                self.sun_zenith,
                self.sun_azimuth,
                self.view_zenith,
                self.view_azimuth,
                self.elevation,
                1.0 if self.valid else 0.0,
                self.pressure,
                self.ozone,
            ],
        ]).astype(np.float64)


@dataclass
class RetrievalResult:
    """
    Outputs of one retrieval model call.

    Attributes
    ----------
    rwa : ndarray
        Atmospherically corrected (angular dependent) water leaving
        reflectances, one per channel.
    rwn : ndarray
        Normalized water leaving reflectances, ``n - 2`` values.
    rwa_oos : float
        Out-of-scope value of the corrected reflectances.
    iops : ndarray
        apig, adet, agelb, bpart, bwit [m^-1].
    kd489, kdmin : float
        Irradiance attenuation coefficients [m^-1].
    unc_iops : ndarray
        Absolute uncertainties of ``iops``.
    unc_adg, unc_atot, unc_btot : float
        Absolute uncertainties of the aggregate IOPs.
    unc_kd489, unc_kdmin : float
        Absolute uncertainties of the attenuation coefficients.
    flags : int
        Flag bits set by the model's internal checks.
    """

    rwa: np.ndarray
    rwn: np.ndarray
    rwa_oos: float
    iops: np.ndarray
    kd489: float
    kdmin: float
    unc_iops: np.ndarray
    unc_adg: float
    unc_atot: float
    unc_btot: float
    unc_kd489: float
    unc_kdmin: float
    flags: int = 0

    @classmethod
    def invalid(cls, channel_count: int) -> "RetrievalResult":
        """All-NaN result with no flags set."""
        n_norm = max(channel_count - NORMALIZED_EXCLUDED_CHANNELS, 0)
        return cls(
            rwa=np.full(channel_count, np.nan),
            rwn=np.full(n_norm, np.nan),
            rwa_oos=np.nan,
            iops=np.full(IOP_COUNT, np.nan),
            kd489=np.nan,
            kdmin=np.nan,
            unc_iops=np.full(IOP_COUNT, np.nan),
            unc_adg=np.nan,
            unc_atot=np.nan,
            unc_btot=np.nan,
            unc_kd489=np.nan,
            unc_kdmin=np.nan,
            flags=0,
        )


class RetrievalModel(Protocol):
    """
    What the pipeline needs from a retrieval model.

    Implementations must be safe to call concurrently: the pipeline shares
    one instance across all tiles and never mutates it after construction.
    """

    def process_pixel(self, inputs: ModelInput) -> RetrievalResult:
        ...

    def used_net_names(self) -> List[str]:
        ...


#: Builds a model from its network files and the run parameters
ModelFactory = Callable[[List[Path], object], RetrievalModel]


@dataclass(frozen=True)
class NetPaths:
    """
    Network files a model is built from.

    Attributes
    ----------
    paths : dict
        Role -> file path, in :data:`NET_ROLES` order.
    builtin : bool
        True for a built-in set (paths relative to the packaged model
        root), False for an alternative set on disk.
    """

    paths: Dict[str, Path] = field(default_factory=dict)
    builtin: bool = True

    def as_list(self) -> List[Path]:
        return [self.paths[role] for role in NET_ROLES]


def _alternative_net_paths(root: Union[str, Path]) -> NetPaths:
    root = Path(root)
    if not root.is_dir():
        raise ConfigurationError(
            f"Alternative neural net path '{root}' is not a directory"
        )

    paths = {}
    for role in NET_ROLES:
        role_dir = root / role
        if not role_dir.is_dir():
            raise ConfigurationError(
                f"Alternative neural net directory '{role_dir}' not found"
            )
        nets = sorted(role_dir.glob("*.net"))
        if len(nets) != 1:
            raise ConfigurationError(
                f"Expected exactly one '*.net' file in '{role_dir}', found {len(nets)}"
            )
        paths[role] = nets[0]
    return NetPaths(paths=paths, builtin=False)


def resolve_net_paths(
    net_set: str,
    alternative_path: Optional[Union[str, Path]] = None,
) -> NetPaths:
    """
    Resolve the network files of a run.

    Parameters
    ----------
    net_set : str
        Name of a built-in set, see :data:`NET_SETS`.
    alternative_path : str or Path, optional
        Directory holding one sub-directory per network role, each with a
        single ``*.net`` file. Replaces the built-in set when given.

    Returns
    -------
    NetPaths
        The network files.

    Raises
    ------
    ConfigurationError
        If the set name is unknown or the alternative directory is
        incomplete.
    """
    if alternative_path:
        logger.info("Using alternative neural nets from %s", alternative_path)
        return _alternative_net_paths(alternative_path)

    relative = NET_SETS.get(net_set)
    if relative is None:
        raise ConfigurationError(f"Unknown set '{net_set}' of neural nets specified.")
    return NetPaths(
        paths={role: Path(relative[role]) for role in NET_ROLES},
        builtin=True,
    )


def load_model(parameters, factory: ModelFactory) -> RetrievalModel:
    """
    Construct the retrieval model of a run.

    Parameters
    ----------
    parameters : RetrievalParameters
        Run parameters; ``net_set`` and ``alternative_nn_path`` select the
        network files.
    factory : callable
        ``factory(net_paths, parameters)`` returning a :class:`RetrievalModel`.

    Returns
    -------
    RetrievalModel
        The model, to be shared read-only for the whole run.
    """
    net_paths = resolve_net_paths(parameters.net_set, parameters.alternative_nn_path)
    model = factory(net_paths.as_list(), parameters)
    logger.info("Retrieval model ready (%d networks)", len(NET_ROLES))
    return model


def check_result_shape(result: RetrievalResult, channel_count: int) -> None:
    """
    Verify that a model result matches the channel layout.

    Raises
    ------
    ValueError
        If a vector has the wrong length.
    """
    expected: Dict[str, Sequence] = {
        "rwa": (result.rwa, channel_count),
        "rwn": (result.rwn, max(channel_count - NORMALIZED_EXCLUDED_CHANNELS, 0)),
        "iops": (result.iops, IOP_COUNT),
        "unc_iops": (result.unc_iops, IOP_COUNT),
    }
    for name, (values, length) in expected.items():
        if len(values) != length:
            raise ValueError(
                f"Retrieval model returned {len(values)} values for '{name}', "
                f"expected {length}"
            )
