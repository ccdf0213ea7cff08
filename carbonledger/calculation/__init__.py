"""
Emission calculation: unit conversion, scope classification, factor
library, calculation engine, Scope 3 estimation and CSV export.
"""

from carbonledger.calculation.engine import (
    ActivityCalculation,
    calculate_activity,
    get_calculation_results,
    run_calculation,
    validate_activity_data,
)
from carbonledger.calculation.factors import find_factor, seed_default_factors
from carbonledger.calculation.scope import determine_scope, map_activity_to_category
from carbonledger.calculation.unit_converter import UnitConverter, convert

__all__ = [
    "ActivityCalculation",
    "calculate_activity",
    "run_calculation",
    "get_calculation_results",
    "validate_activity_data",
    "find_factor",
    "seed_default_factors",
    "determine_scope",
    "map_activity_to_category",
    "UnitConverter",
    "convert",
]
