"""Exceptions raised while building a VRT pyramid"""


class VrtwoError(Exception):
    """Base class for pyramid generation failures"""


class ConfigurationError(VrtwoError, ValueError):
    """Invalid or unsupported configuration, detected before any damage is done"""


class DescriptorError(VrtwoError, OSError):
    """A VRT descriptor could not be parsed or saved"""


class OutputExistsError(VrtwoError, FileExistsError):
    """Destination already exists and overwrite was not requested"""
