"""Generate virtual raster datasets with tiled overview pyramids"""
from .config import Config, PathToOriginalDataset, ResamplingAlgorithm
from .generate import generate

__all__ = ["Config", "PathToOriginalDataset", "ResamplingAlgorithm", "generate"]
