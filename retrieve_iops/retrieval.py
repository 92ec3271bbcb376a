"""
IOP Retrieval for Surface Reflectance Scenes
============================================

Scene-level processor computing inherent optical properties, attenuation
coefficients, uncertainties and quality flags from atmospherically
corrected reflectances.

The processor validates the source scene, resolves the output layout and
constructs the retrieval model once, then runs the per-pixel retrieval of
:mod:`retrieve_iops.transform` tile by tile. Tiles are independent; they may
run on several threads since the schema and the model are only read.

References
----------
.. [1] Brockmann, C., Doerffer, R., Peters, M., Stelzer, K., Embacher, S.,
       and Ruescas, A. (2016). Evolution of the C2RCC neural network for
       Sentinel 2 and 3 for the retrieval of ocean colour products in normal
       and extreme optically complex waters. Proc. Living Planet Symposium,
       ESA SP-740.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np
import xarray as xr
from tqdm import tqdm

from . import constants
from . import derived
from . import flags
from .config import RetrievalParameters
from .exceptions import ConfigurationError
from .model import ModelFactory, RetrievalModel, load_model
from .schema import OutputBlock, OutputSchema, resolve_schema
from .timecoding import LineTimeCoding, scene_time_coding
from .transform import PixelGeometry, PixelSample, compute_pixel, write_pixel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SceneArrays:
    """
    Source rasters of a scene, loaded as numpy arrays.

    Attributes
    ----------
    reflectances : ndarray
        Shape (n_channels, ny, nx).
    sun_zenith, sun_azimuth, view_zenith, view_azimuth : ndarray
        Shape (ny, nx) [degrees].
    latitude, longitude : ndarray
        Shape (ny, nx) [degrees].
    valid : ndarray of bool
        Shape (ny, nx).
    """

    reflectances: np.ndarray
    sun_zenith: np.ndarray
    sun_azimuth: np.ndarray
    view_zenith: np.ndarray
    view_azimuth: np.ndarray
    latitude: np.ndarray
    longitude: np.ndarray
    valid: np.ndarray

    @property
    def shape(self) -> Tuple[int, int]:
        return self.sun_zenith.shape

    def sample(self, y: int, x: int, time_coding: LineTimeCoding) -> PixelSample:
        """Source values of pixel (y, x)."""
        return PixelSample(
            x=x,
            y=y,
            latitude=self.latitude[y, x],
            longitude=self.longitude[y, x],
            geometry=PixelGeometry(
                sun_zenith=float(self.sun_zenith[y, x]),
                sun_azimuth=float(self.sun_azimuth[y, x]),
                view_zenith=float(self.view_zenith[y, x]),
                view_azimuth=float(self.view_azimuth[y, x]),
            ),
            reflectances=self.reflectances[:, y, x],
            valid=bool(self.valid[y, x]),
            time=float(time_coding.mjd(y)),
        )


def _geolocation(scene: xr.Dataset, shape: Tuple[int, int]) -> Tuple[np.ndarray, np.ndarray]:
    lat = np.asarray(scene[constants.LATITUDE_NAME].values, dtype=np.float64)
    lon = np.asarray(scene[constants.LONGITUDE_NAME].values, dtype=np.float64)
    if lat.ndim == 1 and lon.ndim == 1:
        lon, lat = np.meshgrid(lon, lat)
    if lat.shape != shape or lon.shape != shape:
        raise ConfigurationError(
            f"Geocoding of shape {lat.shape} does not match the scene raster size {shape}"
        )
    return lat, lon


def tile_windows(shape: Tuple[int, int], tile_size: int) -> List[Tuple[slice, slice]]:
    """
    Split a raster into disjoint tiles.

    Parameters
    ----------
    shape : tuple of int
        Raster shape (ny, nx).
    tile_size : int
        Tile edge length [pixels].

    Returns
    -------
    list of (slice, slice)
        Row and column windows covering the raster exactly once.
    """
    if tile_size < 1:
        raise ValueError(f"tile_size must be positive, got {tile_size}")
    ny, nx = shape
    return [
        (slice(y0, min(y0 + tile_size, ny)), slice(x0, min(x0 + tile_size, nx)))
        for y0 in range(0, ny, tile_size)
        for x0 in range(0, nx, tile_size)
    ]


class IOPRetrieval:
    """
    IOP retrieval processor for atmospherically corrected reflectance scenes.

    Parameters
    ----------
    parameters : RetrievalParameters
        Run parameters: source bands, output toggles, model selection and
        the TSM / CHL coefficients.
    model_factory : callable
        ``model_factory(net_paths, parameters)`` building the retrieval
        model. Called once, on initialization.
    solar_flux : array_like, optional
        Solar flux per channel passed to the model. All zero by default, the
        reflectance networks do not use it.

    Attributes
    ----------
    schema : OutputSchema
        Output layout, available after :meth:`initialize`.
    model : RetrievalModel
        Retrieval model, available after :meth:`initialize`.

    Examples
    --------
    >>> from retrieve_iops import IOPRetrieval, RetrievalParameters
    >>> params = RetrievalParameters(surface_reflectance_bands=["B1", "B2", "B3", "B4"])
    >>> processor = IOPRetrieval(params, my_model_factory)
    >>> result = processor.process(scene)
    >>> result["iop_apig"]

    Notes
    -----
    The source scene is an :class:`xarray.Dataset` holding, on one (y, x)
    grid, one variable per reflectance band, the four geometry rasters
    ``sun_zenith``, ``sun_azimuth``, ``view_zenith_mean`` and
    ``view_azimuth_mean``, and ``lat`` / ``lon`` geocoding.
    """

    def __init__(
        self,
        parameters: RetrievalParameters,
        model_factory: ModelFactory,
        solar_flux: Optional[np.ndarray] = None,
    ):
        self.parameters = parameters
        self.model_factory = model_factory
        if solar_flux is None:
            solar_flux = np.zeros(parameters.channel_count)
        solar_flux = np.asarray(solar_flux, dtype=np.float64)
        if solar_flux.shape != (parameters.channel_count,):
            raise ConfigurationError(
                f"Expected {parameters.channel_count} solar flux values, got {solar_flux.size}"
            )
        self.solar_flux = solar_flux

        self._schema: Optional[OutputSchema] = None
        self._model: Optional[RetrievalModel] = None

    @property
    def schema(self) -> OutputSchema:
        if self._schema is None:
            raise RuntimeError("Processor not initialized. Call initialize() first.")
        return self._schema

    @property
    def model(self) -> RetrievalModel:
        if self._model is None:
            raise RuntimeError("Processor not initialized. Call initialize() first.")
        return self._model

    @property
    def initialized(self) -> bool:
        return self._schema is not None

    def scene_problems(self, scene: xr.Dataset) -> List[str]:
        """
        List what is missing or inconsistent in a source scene.

        Returns
        -------
        list of str
            One message per problem; empty for a usable scene.
        """
        problems = []
        for name in self.parameters.surface_reflectance_bands:
            if name not in scene.data_vars:
                problems.append(f"Invalid source product, band '{name}' required")

        for name in constants.GEOMETRY_RASTERS:
            if name not in scene:
                problems.append(f"Invalid source product, raster '{name}' required")

        expression = self.parameters.valid_pixel_expression
        if expression and expression not in scene:
            problems.append(f"Invalid source product, raster '{expression}' required")

        if constants.LATITUDE_NAME not in scene or constants.LONGITUDE_NAME not in scene:
            problems.append("The source product must be geo-coded.")

        if not problems:
            shapes = {
                scene[name].shape
                for name in self.parameters.surface_reflectance_bands + constants.GEOMETRY_RASTERS
            }
            if len(shapes) != 1 or len(next(iter(shapes))) != 2:
                problems.append(f"Source rasters must share one 2D raster size, got {sorted(shapes)}")
        return problems

    def is_valid_input(self, scene: xr.Dataset) -> bool:
        """True if ``scene`` holds every required band and raster."""
        return not self.scene_problems(scene)

    def validate_scene(self, scene: xr.Dataset) -> None:
        """
        Check a source scene.

        Raises
        ------
        ConfigurationError
            Naming the first missing or invalid input.
        """
        problems = self.scene_problems(scene)
        if problems:
            for problem in problems[1:]:
                logger.error(problem)
            raise ConfigurationError(
                f"Source must be a AC-reflectance product: {problems[0]}"
            )

    def initialize(self, scene: Optional[xr.Dataset] = None) -> OutputSchema:
        """
        Prepare the run: validate the scene, resolve the schema, load the model.

        The schema and the model are built on the first call only and are
        reused unchanged afterwards.

        Parameters
        ----------
        scene : xarray.Dataset, optional
            Source scene to validate.

        Returns
        -------
        OutputSchema
            The output layout of the run.

        Raises
        ------
        ConfigurationError
            For an invalid scene or model selection.
        """
        if scene is not None:
            self.validate_scene(scene)
        if self._schema is None:
            schema = resolve_schema(
                self.parameters.surface_reflectance_bands, self.parameters.toggles
            )
            model = load_model(self.parameters, self.model_factory)
            self._schema, self._model = schema, model
            logger.info(
                "Output layout resolved: %d bands, %d slots", len(schema), schema.size
            )
        return self._schema

    def load_arrays(self, scene: xr.Dataset) -> SceneArrays:
        """Read the source rasters of ``scene`` into memory."""
        bands = self.parameters.surface_reflectance_bands
        reflectances = np.stack(
            [np.asarray(scene[name].values, dtype=np.float64) for name in bands]
        )
        shape = reflectances.shape[1:]
        lat, lon = _geolocation(scene, shape)

        expression = self.parameters.valid_pixel_expression
        if expression:
            valid = np.asarray(scene[expression].values).astype(bool)
        else:
            valid = np.ones(shape, dtype=bool)

        def raster(name):
            return np.asarray(scene[name].values, dtype=np.float64)

        return SceneArrays(
            reflectances=reflectances,
            sun_zenith=raster(constants.RASTER_NAME_SUN_ZENITH),
            sun_azimuth=raster(constants.RASTER_NAME_SUN_AZIMUTH),
            view_zenith=raster(constants.RASTER_NAME_VIEW_ZENITH),
            view_azimuth=raster(constants.RASTER_NAME_VIEW_AZIMUTH),
            latitude=lat,
            longitude=lon,
            valid=valid,
        )

    def compute_tile(
        self,
        arrays: SceneArrays,
        window: Tuple[slice, slice],
        out: np.ndarray,
        time_coding: LineTimeCoding,
    ) -> None:
        """
        Run the retrieval for every pixel of one tile.

        Writes only the tile's region of ``out``.
        """
        schema, model = self.schema, self.model
        rows, cols = window
        for y in range(rows.start, rows.stop):
            for x in range(cols.start, cols.stop):
                sample = arrays.sample(y, x, time_coding)
                values = compute_pixel(sample, schema, model, self.solar_flux)
                write_pixel(values, out, y, x)

    def compute(
        self,
        scene: xr.Dataset,
        tile_size: int = constants.PREFERRED_TILE_SIZE,
        max_workers: Optional[int] = None,
        progress: bool = False,
        time_coding: Optional[LineTimeCoding] = None,
    ) -> np.ndarray:
        """
        Run the retrieval over a scene into a raw sample buffer.

        Parameters
        ----------
        scene : xarray.Dataset
            Source scene.
        tile_size : int, optional
            Tile edge length [pixels]. Default is 610.
        max_workers : int, optional
            Number of threads; tiles are processed sequentially if None or 1.
        progress : bool, optional
            Show a progress bar over the tiles.
        time_coding : LineTimeCoding, optional
            Pixel time coding. Read from the scene attributes if not given.

        Returns
        -------
        ndarray
            Shape (schema.size, ny, nx). Slots without a band stay NaN.
        """
        schema = self.initialize(scene)
        arrays = self.load_arrays(scene)
        if time_coding is None:
            time_coding = scene_time_coding(scene.attrs, arrays.shape[0])

        out = np.full((schema.size,) + arrays.shape, np.nan)
        windows = tile_windows(arrays.shape, tile_size)
        logger.info("Processing %d tile(s) of up to %d x %d pixels",
                    len(windows), tile_size, tile_size)

        with tqdm(total=len(windows), desc="Retrieving IOPs", disable=not progress) as bar:
            if max_workers is None or max_workers <= 1:
                for window in windows:
                    self.compute_tile(arrays, window, out, time_coding)
                    bar.update(1)
            else:
                with ThreadPoolExecutor(max_workers=max_workers) as pool:
                    futures = [
                        pool.submit(self.compute_tile, arrays, window, out, time_coding)
                        for window in windows
                    ]
                    for future in futures:
                        future.result()
                        bar.update(1)
        return out

    def process(
        self,
        scene: xr.Dataset,
        tile_size: int = constants.PREFERRED_TILE_SIZE,
        max_workers: Optional[int] = None,
        progress: bool = False,
    ) -> xr.Dataset:
        """
        Run the retrieval over a scene.

        Parameters
        ----------
        scene : xarray.Dataset
            Source scene.
        tile_size : int, optional
            Tile edge length [pixels]. Default is 610.
        max_workers : int, optional
            Number of threads. Default processes tiles sequentially.
        progress : bool, optional
            Show a progress bar over the tiles.

        Returns
        -------
        xarray.Dataset
            One variable per output band in schema order, the derived
            (virtual) bands, and the ``quality_flags`` band with its flag
            coding.

        Raises
        ------
        ConfigurationError
            If the scene or the configuration is invalid. Nothing is
            processed in that case.
        """
        self.initialize(scene)
        height = scene[self.parameters.surface_reflectance_bands[0]].shape[0]
        time_coding = scene_time_coding(scene.attrs, height)
        out = self.compute(scene, tile_size, max_workers, progress, time_coding)
        return self.build_output(scene, out, time_coding)

    def build_output(
        self,
        scene: xr.Dataset,
        out: np.ndarray,
        time_coding: Optional[LineTimeCoding] = None,
    ) -> xr.Dataset:
        """
        Assemble the output dataset from a raw sample buffer.

        Scene attributes are copied. ``start_time`` and ``end_time`` are
        added from ``time_coding`` when the scene does not carry them.
        """
        schema = self.schema
        dims = scene[self.parameters.surface_reflectance_bands[0]].dims

        data_vars: Dict[str, xr.DataArray] = {}
        for name, slot in schema.slots.items():
            if name == constants.FLAG_BAND_NAME:
                continue
            attrs = self._band_attrs(scene, name)
            data_vars[name] = xr.DataArray(out[slot].astype(np.float32), dims=dims, attrs=attrs)

        stored = {name: data_vars[name].values for name in data_vars}
        virtual = derived.compute_virtual_bands(stored, self.parameters)
        for band in derived.virtual_bands(self.parameters.toggles):
            data_vars[band.name] = xr.DataArray(
                np.asarray(virtual[band.name], dtype=np.float32),
                dims=dims,
                attrs={
                    "units": band.unit,
                    "long_name": band.description,
                    "valid_pixel_expression": constants.VALID_PIXEL_EXPRESSION,
                    "virtual": 1,
                },
            )
        if self.parameters.toggles.output_uncertainties:
            self._link_uncertainties(data_vars)

        flag_values = np.nan_to_num(out[schema.flag_slot], nan=0.0).astype(np.uint32)
        data_vars[constants.FLAG_BAND_NAME] = xr.DataArray(
            flag_values, dims=dims, attrs=self._flag_attrs()
        )

        coords = {
            name: scene[name]
            for name in (constants.LATITUDE_NAME, constants.LONGITUDE_NAME)
            if name in scene
        }
        result = xr.Dataset(data_vars, coords=coords, attrs=dict(scene.attrs))
        result.attrs.update({
            "product_type": constants.PRODUCT_TYPE,
            "auto_grouping": self.auto_grouping(),
            "used_neural_nets": " ".join(self.model.used_net_names()),
            "salinity": self.parameters.salinity,
            "temperature": self.parameters.temperature,
        })
        if time_coding is not None:
            for key, time in (("start_time", time_coding.start), ("end_time", time_coding.end)):
                if time is not None and key not in result.attrs:
                    result.attrs[key] = time.strftime(constants.PRODUCT_DATE_FORMAT)
        return result

    def auto_grouping(self) -> str:
        """Band grouping pattern of the output, e.g. ``iop:conc:rhow:kd:unc``."""
        toggles = self.parameters.toggles
        rhown = self.schema.block(OutputBlock.RHOWN)
        groups = ["iop", "conc"]
        if toggles.output_ac_reflectance:
            groups.append("rrs" if toggles.output_as_rrs else "rhow")
        if rhown is not None and rhown.width:
            groups.append("rhown")
        if toggles.output_oos:
            groups.append("oos")
        if toggles.output_kd:
            groups.append("kd")
        if toggles.output_uncertainties:
            groups.append("unc")
        return ":".join(groups)

    def _band_attrs(self, scene: xr.Dataset, name: str) -> Dict[str, object]:
        schema = self.schema
        key = name
        source_band = None
        for kind in (OutputBlock.AC_REFLECTANCE, OutputBlock.RHOWN):
            block = schema.block(kind)
            if block is not None and name in block.names:
                key = name.split("_", 1)[0] + "_"
                source_band = schema.channel_names[block.names.index(name)]
        unit, description = constants.BAND_INFO[key]

        attrs: Dict[str, object] = {
            "units": unit,
            "long_name": description,
            "valid_pixel_expression": constants.VALID_PIXEL_EXPRESSION,
        }
        if source_band is not None:
            for attr in ("wavelength", "spectral_wavelength", "bandwidth", "spectral_band_index"):
                if attr in scene[source_band].attrs:
                    attrs[attr] = scene[source_band].attrs[attr]
        return attrs

    @staticmethod
    def _link_uncertainties(data_vars: Dict[str, xr.DataArray]) -> None:
        pairs = [("iop_" + c, "unc_" + c) for c in constants.IOP_NAMES]
        pairs += [("iop_" + c, "unc_" + c) for c in constants.AGGREGATE_UNCERTAINTY_NAMES]
        pairs += [(kd, "unc_" + kd) for kd in constants.KD_NAMES]
        pairs += [("conc_tsm", "unc_tsm"), ("conc_chl", "unc_chl"),
                  ("kd_z90max", "unc_kd_z90max")]
        for value, uncertainty in pairs:
            if value in data_vars and uncertainty in data_vars:
                data_vars[value].attrs["ancillary_variables"] = uncertainty

    @staticmethod
    def _flag_attrs() -> Dict[str, object]:
        masks = flags.mask_definitions()
        attrs: Dict[str, object] = {
            "long_name": constants.BAND_INFO[constants.FLAG_BAND_NAME][1],
        }
        attrs.update(flags.flag_coding_attrs())
        attrs["flag_colors"] = " ".join(mask.color for mask in masks)
        attrs["flag_transparencies"] = np.array(
            [mask.transparency for mask in masks], dtype=np.float32
        )
        return attrs
