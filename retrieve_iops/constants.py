"""
Constants and product definitions for IOP retrieval.

This module contains constants used throughout the retrieval pipeline,
including:

- Required source raster names (geometry, geocoding)
- IOP component names and output band metadata
- Built-in neural network sets for the retrieval model
- Default processing parameters and their valid ranges

References
----------
.. [1] Doerffer, R. and Schiller, H. (2007). The MERIS Case 2 water
       algorithm. International Journal of Remote Sensing, 28:517-535.
.. [2] Brockmann, C., et al. (2016). Evolution of the C2RCC neural network
       for Sentinel 2 and 3 for the retrieval of ocean colour products in
       normal and extreme optically complex waters. Proc. Living Planet
       Symposium, ESA SP-740.
"""

from typing import Dict, Tuple

# =============================================================================
# Source Rasters
# =============================================================================

#: Sun and viewing geometry rasters required in every source scene [degrees]
RASTER_NAME_SUN_ZENITH: str = "sun_zenith"
RASTER_NAME_SUN_AZIMUTH: str = "sun_azimuth"
RASTER_NAME_VIEW_ZENITH: str = "view_zenith_mean"
RASTER_NAME_VIEW_AZIMUTH: str = "view_azimuth_mean"

GEOMETRY_RASTERS: Tuple[str, ...] = (
    RASTER_NAME_SUN_ZENITH,
    RASTER_NAME_SUN_AZIMUTH,
    RASTER_NAME_VIEW_ZENITH,
    RASTER_NAME_VIEW_AZIMUTH,
)

#: Geocoding variables (or coordinates) of a geocoded scene
LATITUDE_NAME: str = "lat"
LONGITUDE_NAME: str = "lon"

# =============================================================================
# Output Layout
# =============================================================================

#: IOP components in model output order
IOP_NAMES: Tuple[str, ...] = ("apig", "adet", "agelb", "bpart", "bwit")

#: Number of IOP components
IOP_COUNT: int = len(IOP_NAMES)

#: Attenuation coefficient outputs
KD_NAMES: Tuple[str, ...] = ("kd489", "kdmin")

#: Aggregate IOP uncertainties delivered by the model
AGGREGATE_UNCERTAINTY_NAMES: Tuple[str, ...] = ("adg", "atot", "btot")

#: Channels not covered by the normalized reflectance network.
#: The normalized block holds the leading channels only.
NORMALIZED_EXCLUDED_CHANNELS: int = 2

#: Name of the packed quality flag band
FLAG_BAND_NAME: str = "quality_flags"

#: Expression marking pixels for which the valid pixel expression held
VALID_PIXEL_EXPRESSION: str = FLAG_BAND_NAME + ".Valid_PE"

#: Product type written to the output attributes
PRODUCT_TYPE: str = "C2RCC_REFLECTANCE"

#: Preferred tile edge length [pixels]
PREFERRED_TILE_SIZE: int = 610

#: Time format of the PRODUCT_START_TIME / PRODUCT_STOP_TIME metadata
PRODUCT_DATE_FORMAT: str = "%Y-%m-%dT%H:%M:%S.%fZ"

#: Units and descriptions of the stored output bands.
#: Spectral bands are keyed by their prefix.
BAND_INFO: Dict[str, Tuple[str, str]] = {
    "rhow_": ("1", "Atmospherically corrected Angular dependent water leaving reflectances"),
    "rrs_": ("sr^-1", "Atmospherically corrected Angular dependent remote sensing reflectances"),
    "rhown_": ("1", "Normalized water leaving reflectances"),
    "oos_rhow": ("1", "Water leaving reflectances are out of scope of nn training dataset"),
    "oos_rrs": ("1", "Remote sensing reflectance are out of scope of nn training dataset"),
    "iop_apig": ("m^-1", "Absorption coefficient of phytoplankton pigments at 443 nm"),
    "iop_adet": ("m^-1", "Absorption coefficient of detritus at 443 nm"),
    "iop_agelb": ("m^-1", "Absorption coefficient of gelbstoff at 443 nm"),
    "iop_bpart": ("m^-1", "Scattering coefficient of marine paticles at 443 nm"),
    "iop_bwit": ("m^-1", "Scattering coefficient of white particles at 443 nm"),
    "kd489": ("m^-1", "Irradiance attenuation coefficient at 489 nm"),
    "kdmin": ("m^-1", "Mean irradiance attenuation coefficient at the three bands with minimum kd"),
    "unc_apig": ("m^-1", "Uncertainty of pigment absorption coefficient"),
    "unc_adet": ("m^-1", "Uncertainty of detritus absorption coefficient"),
    "unc_agelb": ("m^-1", "Uncertainty of dissolved gelbstoff absorption coefficient"),
    "unc_bpart": ("m^-1", "Uncertainty of particle scattering coefficient"),
    "unc_bwit": ("m^-1", "Uncertainty of white particle scattering coefficient"),
    "unc_adg": ("m^-1", "Uncertainty of total gelbstoff absorption coefficient"),
    "unc_atot": ("m^-1", "Uncertainty of total water constituent absorption coefficient"),
    "unc_btot": ("m^-1", "Uncertainty of total water constituent scattering coefficient"),
    "unc_kd489": ("m^-1", "Uncertainty of irradiance attenuation coefficient"),
    "unc_kdmin": ("m^-1", "Uncertainty of mean irradiance attenuation coefficient"),
    FLAG_BAND_NAME: ("1", "Quality flags of the IOP retrieval"),
}

# =============================================================================
# Neural Network Sets
# =============================================================================

#: Network roles, in the order the retrieval model expects its files
NET_ROLES: Tuple[str, ...] = (
    "iop_rw",
    "iop_unciop",
    "iop_uncsumiop_unckd",
    "rtosa_aann",
    "rtosa_rpath",
    "rtosa_rw",
    "rtosa_trans",
    "rw_iop",
    "rw_kd",
    "rw_rwnorm",
)

#: Name of the standard network set
STANDARD_NETS: str = "C2RCC-Nets"

#: Name of the network set trained for extreme (turbid, absorbing) waters
EXTREME_NETS: str = "C2X-Nets"

#: Built-in network sets: role -> file path relative to the model root
NET_SETS: Dict[str, Dict[str, str]] = {
    STANDARD_NETS: {
        "iop_rw": "msi/std_s2_20160502/iop_rw/17x97x47_125.5.net",
        "iop_unciop": "msi/std_s2_20160502/iop_unciop/17x77x37_11486.7.net",
        "iop_uncsumiop_unckd": "msi/std_s2_20160502/iop_uncsumiop_unckd/17x77x37_9113.1.net",
        "rtosa_aann": "msi/std_s2_20160502/rtosa_aann/31x7x31_78.0.net",
        "rtosa_rpath": "msi/std_s2_20160502/rtosa_rpath/31x77x57x37_1564.4.net",
        "rtosa_rw": "msi/std_s2_20160502/rtosa_rw/33x73x53x33_291140.4.net",
        "rtosa_trans": "msi/std_s2_20160502/rtosa_trans/31x77x57x37_37537.6.net",
        "rw_iop": "msi/std_s2_20160502/rw_iop/97x77x37_17515.9.net",
        "rw_kd": "msi/std_s2_20160502/rw_kd/97x77x7_306.8.net",
        "rw_rwnorm": "msi/std_s2_20160502/rw_rwnorm/27x7x27_28.0.net",
    },
    EXTREME_NETS: {
        "iop_rw": "msi/ext_s2_elbetsm_20170320/iop_rw/77x77x77_28.3.net",
        "iop_unciop": "msi/ext_s2_elbetsm_20170320/iop_unciop/17x77x37_11486.7.net",
        "iop_uncsumiop_unckd": "msi/ext_s2_elbetsm_20170320/iop_uncsumiop_unckd/17x77x37_9113.1.net",
        "rtosa_aann": "msi/ext_s2_elbetsm_20170320/rtosa_aann/31x7x31_7.2.net",
        "rtosa_rpath": "msi/ext_s2_elbetsm_20170320/rtosa_rpath/37x37x37_175.7.net",
        "rtosa_rw": "msi/ext_s2_elbetsm_20170320/rtosa_rw/77x77x77x77_10688.3.net",
        "rtosa_trans": "msi/ext_s2_elbetsm_20170320/rtosa_trans/77x77x77_7809.2.net",
        "rw_iop": "msi/ext_s2_elbetsm_20170320/rw_iop/77x77x77_785.6.net",
        "rw_kd": "msi/ext_s2_elbetsm_20170320/rw_kd/77x77x77_61.6.net",
        "rw_rwnorm": "msi/ext_s2_elbetsm_20170320/rw_rwnorm/27x7x27_28.0.net",
    },
}

# =============================================================================
# Processing Parameters
# =============================================================================

#: Default scene salinity [PSU] and its open valid interval
DEFAULT_SALINITY: float = 35.0
SALINITY_RANGE: Tuple[float, float] = (0.000028, 43.0)

#: Default scene water temperature [°C] and its open valid interval
DEFAULT_TEMPERATURE: float = 15.0
TEMPERATURE_RANGE: Tuple[float, float] = (0.000111, 36.0)

#: Total suspended matter: TSM = TSM_FACTOR * iop_btot ** TSM_EXPONENT
DEFAULT_TSM_FACTOR: float = 1.72
DEFAULT_TSM_EXPONENT: float = 3.1

#: Chlorophyll: CHL = iop_apig ** CHL_EXPONENT * CHL_FACTOR
DEFAULT_CHL_EXPONENT: float = 1.04
DEFAULT_CHL_FACTOR: float = 21.0

#: Out-of-scope threshold for the atmospherically corrected reflectances
DEFAULT_OOS_THRESHOLD: float = 0.1
