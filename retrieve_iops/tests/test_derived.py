"""
Tests for the derived (virtual) bands.
"""

import numpy as np
import pytest
from numpy.testing import assert_allclose

from retrieve_iops import derived
from retrieve_iops.config import RetrievalParameters
from retrieve_iops.schema import FeatureToggles


STORED = {
    "iop_apig": np.array([0.1, 0.5]),
    "iop_adet": np.array([0.2, 0.1]),
    "iop_agelb": np.array([0.3, 0.05]),
    "iop_bpart": np.array([0.4, 1.0]),
    "iop_bwit": np.array([0.5, 0.2]),
    "kd489": np.array([0.6, 0.3]),
    "kdmin": np.array([0.7, 0.25]),
    "unc_apig": np.array([0.01, 0.02]),
    "unc_btot": np.array([0.08, 0.1]),
    "unc_kdmin": np.array([0.1, 0.05]),
}


class TestFormulas:
    """Tests for the individual formulas."""

    def test_aggregates(self):
        assert derived.adg(0.2, 0.3) == pytest.approx(0.5)
        assert derived.atot(0.1, 0.2, 0.3) == pytest.approx(0.6)
        assert derived.btot(0.4, 0.5) == pytest.approx(0.9)

    def test_tsm_power_law(self):
        assert derived.tsm_concentration(0.9, 1.72, 3.1) == pytest.approx(1.72 * 0.9 ** 3.1)
        assert derived.tsm_concentration(2.0, 1.0, 1.0) == pytest.approx(2.0)

    def test_chl(self):
        assert derived.chl_concentration(0.1, 1.04, 21.0) == pytest.approx(0.1 ** 1.04 * 21.0)

    def test_z90(self):
        assert derived.z90_max(0.7) == pytest.approx(1 / 0.7)
        assert np.isinf(derived.z90_max(0.0))

    def test_unc_z90(self):
        expected = abs(1 / 0.7 - 1 / abs(0.7 - 0.1))
        assert derived.unc_z90_max(0.7, 0.1) == pytest.approx(expected)

    def test_unc_z90_uncertainty_exceeds_value(self):
        expected = abs(1 / 0.2 - 1 / 0.1)
        assert derived.unc_z90_max(0.2, 0.3) == pytest.approx(expected)

    def test_negative_base_nan(self):
        assert np.isnan(derived.tsm_concentration(-0.5, 1.72, 3.1))


class TestVirtualBandSelection:
    """Which derived bands a run offers."""

    def test_all_outputs(self):
        names = derived.virtual_band_names(FeatureToggles(output_kd=True, output_uncertainties=True))
        assert names == [
            "iop_adg", "iop_atot", "iop_btot", "kd_z90max", "conc_tsm", "conc_chl",
            "unc_tsm", "unc_chl", "unc_kd_z90max",
        ]

    def test_no_kd(self):
        names = derived.virtual_band_names(FeatureToggles(output_kd=False, output_uncertainties=True))
        assert "kd_z90max" not in names
        assert "unc_kd_z90max" not in names
        assert "unc_tsm" in names

    def test_no_uncertainties(self):
        names = derived.virtual_band_names(FeatureToggles(output_kd=True, output_uncertainties=False))
        assert not [n for n in names if n.startswith("unc_")]
        assert "kd_z90max" in names

    def test_uncertainty_links(self):
        bands = derived.virtual_bands(FeatureToggles())
        links = {b.name: b.uncertainty_of for b in bands if b.uncertainty_of}
        assert links == {"unc_tsm": "conc_tsm", "unc_chl": "conc_chl", "unc_kd_z90max": "kd_z90max"}

    def test_inputs_available_in_order(self):
        available = {"iop_apig", "iop_adet", "iop_agelb", "iop_bpart", "iop_bwit",
                     "kd489", "kdmin", "unc_apig", "unc_btot", "unc_kdmin"}
        for band in derived.virtual_bands(FeatureToggles()):
            assert set(band.inputs) <= available
            available.add(band.name)


class TestComputeVirtualBands:
    """Tests for compute_virtual_bands."""

    def test_values(self, parameters):
        bands = derived.compute_virtual_bands(STORED, parameters)

        btot = STORED["iop_bpart"] + STORED["iop_bwit"]
        assert_allclose(bands["iop_btot"], btot)
        assert_allclose(bands["iop_adg"], STORED["iop_adet"] + STORED["iop_agelb"])
        assert_allclose(bands["conc_tsm"], 1.72 * btot ** 3.1)
        assert_allclose(bands["conc_chl"], STORED["iop_apig"] ** 1.04 * 21.0)
        assert_allclose(bands["kd_z90max"], 1 / STORED["kdmin"])
        assert_allclose(bands["unc_tsm"], 1.72 * STORED["unc_btot"] ** 3.1)
        assert_allclose(bands["unc_chl"], STORED["unc_apig"] ** 1.04 * 21.0)

    def test_custom_coefficients(self, band_names):
        parameters = RetrievalParameters(
            surface_reflectance_bands=band_names, tsm_fac=2.0, tsm_exp=1.0, chl_exp=1.0, chl_fac=10.0,
        )
        bands = derived.compute_virtual_bands(STORED, parameters)
        assert_allclose(bands["conc_tsm"], 2.0 * (STORED["iop_bpart"] + STORED["iop_bwit"]))
        assert_allclose(bands["conc_chl"], 10.0 * STORED["iop_apig"])

    def test_missing_input(self, parameters):
        stored = dict(STORED)
        del stored["kdmin"]
        with pytest.raises(KeyError):
            derived.compute_virtual_bands(stored, parameters)

    def test_nan_propagates(self, parameters):
        stored = {name: np.array([np.nan]) for name in STORED}
        bands = derived.compute_virtual_bands(stored, parameters)
        for values in bands.values():
            assert np.isnan(values).all()
