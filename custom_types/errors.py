"""Exception types raised by the simulators, dispatch and portfolio engine."""


class PlantRiskError(Exception):
    """Base class for all errors raised by this package."""


class InvalidModelParameters(PlantRiskError, ValueError):
    """Calibrated model is unusable (short presample, bad distribution params, ...)."""


class InvalidAssetSpec(PlantRiskError, ValueError):
    """Asset record outside its valid ranges."""


class DimensionMismatch(PlantRiskError, ValueError):
    """Path lengths or trial counts do not line up."""


class DataFetchFailure(PlantRiskError, RuntimeError):
    """Historical data could not be retrieved. Never retried."""


class NumericAnomaly(PlantRiskError, ArithmeticError):
    """A simulation step produced a non-finite value."""

    def __init__(self, message: str, trials=None):
        super().__init__(message)
        self.trials = [] if trials is None else list(trials)


class SimulationCancelled(PlantRiskError):
    """Run stopped at a batch boundary on caller request."""
