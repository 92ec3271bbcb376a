"""
Pytest configuration and shared fixtures for retrieve_iops tests.
"""

import numpy as np
import pytest
import xarray as xr

from retrieve_iops.config import RetrievalParameters
from retrieve_iops.model import RetrievalResult
from retrieve_iops.schema import FeatureToggles


def fixed_result(channel_count, flags=0):
    """Known retrieval outputs for ``channel_count`` channels."""
    return RetrievalResult(
        rwa=0.01 * (1 + np.arange(channel_count)),
        rwn=0.02 * (1 + np.arange(channel_count - 2)),
        rwa_oos=0.5,
        iops=np.array([0.1, 0.2, 0.3, 0.4, 0.5]),
        kd489=0.6,
        kdmin=0.7,
        unc_iops=np.array([0.01, 0.02, 0.03, 0.04, 0.05]),
        unc_adg=0.06,
        unc_atot=0.07,
        unc_btot=0.08,
        unc_kd489=0.09,
        unc_kdmin=0.1,
        flags=flags,
    )


class StubModel:
    """Retrieval model returning :func:`fixed_result` and recording its inputs."""

    def __init__(self, channel_count, flags=0):
        self.channel_count = channel_count
        self.flags = flags
        self.calls = []

    def process_pixel(self, inputs):
        self.calls.append(inputs)
        return fixed_result(self.channel_count, self.flags)

    def used_net_names(self):
        return ["stub_rw_iop", "stub_rw_kd"]


@pytest.fixture
def make_result():
    """Factory for known retrieval outputs."""
    return fixed_result


@pytest.fixture
def make_stub_model():
    """Factory for stub models with chosen flags."""
    return StubModel


@pytest.fixture
def stub_model():
    """Stub model for four channels."""
    return StubModel(4)


@pytest.fixture
def model_factory():
    """Model factory recording the models it built."""
    built = []

    def factory(net_paths, parameters):
        model = StubModel(parameters.channel_count, flags=1 << 3)
        model.net_paths = net_paths
        built.append(model)
        return model

    factory.built = built
    return factory


@pytest.fixture
def band_names():
    """Four surface reflectance bands."""
    return ["B2", "B3", "B4", "B5"]


@pytest.fixture
def scenario_toggles():
    """Corrected, normalized, Kd and uncertainty output; rhow in and out."""
    return FeatureToggles(
        output_ac_reflectance=True,
        output_rhown=True,
        output_oos=False,
        output_kd=True,
        output_uncertainties=True,
        input_as_rrs=False,
        output_as_rrs=False,
    )


@pytest.fixture
def typical_geometry():
    """Typical sun and viewing geometry [degrees]."""
    return {
        'sun_zenith': 35.0,
        'sun_azimuth': 150.0,
        'view_zenith': 5.0,
        'view_azimuth': 100.0,
    }


@pytest.fixture
def coastal_rhow():
    """Water leaving reflectance spectrum of a coastal pixel."""
    return np.array([0.02, 0.03, 0.015, 0.01])


@pytest.fixture
def parameters(band_names, scenario_toggles):
    """Run parameters for the four band scene."""
    return RetrievalParameters(
        surface_reflectance_bands=band_names,
        toggles=scenario_toggles,
    )


@pytest.fixture
def scene(band_names, coastal_rhow, typical_geometry):
    """Geocoded 3 x 4 pixel scene with a constant spectrum."""
    ny, nx = 3, 4
    dims = ("y", "x")
    data_vars = {}
    for name, value in zip(band_names, coastal_rhow):
        data_vars[name] = xr.DataArray(
            np.full((ny, nx), value), dims=dims, attrs={"wavelength": 490.0}
        )
    data_vars["sun_zenith"] = xr.DataArray(np.full((ny, nx), typical_geometry['sun_zenith']), dims=dims)
    data_vars["sun_azimuth"] = xr.DataArray(np.full((ny, nx), typical_geometry['sun_azimuth']), dims=dims)
    data_vars["view_zenith_mean"] = xr.DataArray(np.full((ny, nx), typical_geometry['view_zenith']), dims=dims)
    data_vars["view_azimuth_mean"] = xr.DataArray(np.full((ny, nx), typical_geometry['view_azimuth']), dims=dims)
    valid = np.ones((ny, nx), dtype=bool)
    valid[0, 0] = False
    data_vars["water_mask"] = xr.DataArray(valid, dims=dims)

    lat, lon = np.meshgrid(np.linspace(54.0, 54.2, ny), np.linspace(8.0, 8.3, nx), indexing="ij")
    coords = {
        "lat": (dims, lat),
        "lon": (dims, lon),
    }
    return xr.Dataset(
        data_vars,
        coords=coords,
        attrs={
            "start_time": "2016-07-04T10:30:00.000Z",
            "end_time": "2016-07-04T10:30:06.000Z",
        },
    )

