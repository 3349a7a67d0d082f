"""
Exceptions raised by the brownfield risk pipeline.
"""


class BrownfieldRiskError(Exception):
    """Base class for pipeline errors."""


class DatasetUnavailableError(BrownfieldRiskError):
    """An input dataset (register, raster, vector) could not be opened or read.

    Fatal for the whole run: no partial output is written.
    """

    def __init__(self, path, reason):
        self.path = str(path)
        self.reason = str(reason)
        super().__init__(f"Cannot read input dataset '{self.path}': {self.reason}")
