"""
retrieve_iops: Water Constituent Retrieval from Surface Reflectances
====================================================================

A Python implementation of a neural-network based retrieval of inherent
optical properties (IOPs), irradiance attenuation coefficients and their
uncertainties from atmospherically corrected reflectance products.

Main Classes
------------
IOPRetrieval
    Scene processor running the per-pixel retrieval tile by tile.
RetrievalParameters
    Processing parameters of a run.

Modules
-------
schema
    Output band layout resolved from the feature toggles.
transform
    Per-pixel model input preparation and output scattering.
model
    Contract of the retrieval model and network set selection.
flags
    Quality flag bits and their display metadata.
derived
    Virtual bands (aggregate IOPs, concentrations, penetration depth).
timecoding
    Acquisition time lookup.

Example
-------
>>> from retrieve_iops import resolve_schema, FeatureToggles
>>> schema = resolve_schema(["B1", "B2", "B3", "B4"], FeatureToggles())
>>> schema.slot("iop_apig")
8
"""

__version__ = "0.1.0"

from retrieve_iops.config import RetrievalParameters
from retrieve_iops.exceptions import ConfigurationError
from retrieve_iops.model import ModelInput, RetrievalModel, RetrievalResult
from retrieve_iops.retrieval import IOPRetrieval
from retrieve_iops.schema import FeatureToggles, OutputBlock, OutputSchema, resolve_schema
from retrieve_iops.transform import PixelSample, compute_pixel

__all__ = [
    "IOPRetrieval",
    "RetrievalParameters",
    "ConfigurationError",
    "FeatureToggles",
    "OutputBlock",
    "OutputSchema",
    "resolve_schema",
    "ModelInput",
    "RetrievalModel",
    "RetrievalResult",
    "PixelSample",
    "compute_pixel",
    "__version__",
]
