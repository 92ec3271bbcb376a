"""
Exceptions raised by the retrieval pipeline.
"""


class ConfigurationError(ValueError):
    """
    Fatal problem with the processing configuration or the source scene.

    Raised during initialization, before any pixel is processed: missing
    source bands or rasters, an unknown network set, a scene without
    geocoding, or an empty spectral channel set.
    """
