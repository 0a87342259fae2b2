# core/exceptions.py

class SliceInspectorError(Exception):
    """Base class for all custom exceptions in this application."""
    pass

class ConfigurationError(SliceInspectorError):
    """Exception raised for errors in configuration loading or validation."""
    pass

class DrawingOperationError(ConfigurationError):
    """Exception raised when a pixel operation kind is not known to the drawing engine."""
    pass

class RasterDecodeError(SliceInspectorError):
    """Exception raised when the layer storage fails to produce a decoded raster."""
    pass

class RasterShapeError(SliceInspectorError):
    """Exception raised when a raster does not match the stack resolution or is not 8-bit single channel."""
    pass

class LayerIndexError(SliceInspectorError, IndexError):
    """Exception raised for a layer index outside the stack."""
    pass
