from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

import numpy as np

from custom_types.errors import InvalidAssetSpec
from custom_types.types import HOURS_PER_DAY


@dataclass(frozen=True)
class Asset:
    capacity: float                 # MW
    heat_rate: float                # Btu/kWh
    vom: float                      # variable O&M, $/MWh
    min_run_hours: int              # consecutive hours the unit must run once started
    name: Optional[str] = None

    # not modelled (limitation)
    # start_cost
    # min_stop
    # ramp rates

    def __post_init__(self):
        """Reject records outside the physical ranges"""
        problems = []

        if not np.isfinite(self.capacity) or self.capacity <= 0.0:
            problems.append(f"capacity={self.capacity} (must be > 0)")

        if not np.isfinite(self.heat_rate) or self.heat_rate <= 0.0:
            problems.append(f"heat_rate={self.heat_rate} (must be > 0)")

        if not np.isfinite(self.vom):
            problems.append(f"vom={self.vom} (must be finite)")

        min_run = self.min_run_hours
        try:
            whole = float(min_run).is_integer()
        except (TypeError, ValueError):
            whole = False

        if not whole or not 1 <= min_run <= HOURS_PER_DAY:
            problems.append(f"min_run_hours={min_run} (must be an integer in [1, {HOURS_PER_DAY}])")
        else:
            object.__setattr__(self, 'min_run_hours', int(min_run))

        if problems:
            label = self.name or 'asset'
            raise InvalidAssetSpec(f"Invalid {label}: " + ', '.join(problems))

    @property
    def label(self) -> str:
        return self.name or f"Plant_{self.capacity:g}MW_HR{self.heat_rate:g}"


def as_asset_table(assets: Iterable) -> Sequence[Asset]:
    """
    Normalise an asset table into a tuple of Asset records.

    Accepts Asset instances, dicts of Asset fields, or rows of
    (capacity, heat_rate, vom, min_run_hours).
    """
    table = []
    for i, row in enumerate(assets):
        if isinstance(row, Asset):
            table.append(row)
        elif isinstance(row, dict):
            table.append(Asset(**row))
        else:
            values = list(row)
            if len(values) != 4:
                raise InvalidAssetSpec(
                    f"Asset row {i} has {len(values)} columns; expected "
                    f"capacity, heat_rate, vom, min_run_hours"
                )
            table.append(Asset(float(values[0]), float(values[1]), float(values[2]), values[3]))

    if not table:
        raise InvalidAssetSpec("Asset table is empty")

    return tuple(table)
