# -*- coding: utf-8 -*-
"""
Unit Conversion Table

ZERO-HALLUCINATION: All conversions are deterministic multiplications from
a fixed table. Fail loudly on unknown unit pairs.

Each entry converts ``from_unit`` into ``to_unit`` by multiplying; the
reverse direction divides by the same factor. Unit names are compared
case-insensitively.

Supports:
- Energy: MWh, GWh, GJ, MJ, therms -> kWh
- Volume: m3, gallons (imperial), US_gallons -> litres
- Mass: tonnes, g, lbs -> kg
- Distance: miles, m -> km
- Currency: USD, EUR -> GBP (fixed indicative rates)
"""

from typing import Dict, List, NamedTuple

from carbonledger.exceptions import UnitConversionError


class UnitConversion(NamedTuple):
    from_unit: str
    to_unit: str
    factor: float


UNIT_CONVERSIONS: List[UnitConversion] = [
    # Energy
    UnitConversion("MWh", "kWh", 1000),
    UnitConversion("GWh", "kWh", 1000000),
    UnitConversion("GJ", "kWh", 277.778),
    UnitConversion("MJ", "kWh", 0.277778),
    UnitConversion("therms", "kWh", 29.3071),
    # Volume
    UnitConversion("m3", "litres", 1000),
    UnitConversion("gallons", "litres", 4.546),
    UnitConversion("US_gallons", "litres", 3.785),
    # Mass
    UnitConversion("tonnes", "kg", 1000),
    UnitConversion("g", "kg", 0.001),
    UnitConversion("lbs", "kg", 0.453592),
    # Distance
    UnitConversion("miles", "km", 1.609344),
    UnitConversion("m", "km", 0.001),
    # Currency (indicative rates)
    UnitConversion("USD", "GBP", 0.79),
    UnitConversion("EUR", "GBP", 0.86),
]


class UnitConverter:
    """
    Table-driven unit converter.

    GUARANTEES:
    - Identical units pass through unchanged
    - Forward table match multiplies, reverse match divides
    - Unknown pairs -> UnitConversionError
    """

    def __init__(self, conversions: List[UnitConversion] = None):
        self._forward: Dict[tuple, float] = {}
        self._reverse: Dict[tuple, float] = {}
        for conv in conversions or UNIT_CONVERSIONS:
            key = (conv.from_unit.lower(), conv.to_unit.lower())
            self._forward.setdefault(key, conv.factor)
            self._reverse.setdefault((key[1], key[0]), conv.factor)

    def convert(self, value: float, from_unit: str, to_unit: str) -> float:
        """
        Convert value between units.

        Args:
            value: Numeric value to convert
            from_unit: Source unit
            to_unit: Target unit

        Returns:
            Converted value

        Raises:
            UnitConversionError: If no table entry links the two units
        """
        if from_unit == to_unit:
            return value

        key = (from_unit.lower(), to_unit.lower())
        if key in self._forward:
            return value * self._forward[key]
        if key in self._reverse:
            return value / self._reverse[key]

        raise UnitConversionError(
            f"No conversion available from {from_unit} to {to_unit}",
            from_unit=from_unit,
            to_unit=to_unit,
        )

    def is_convertible(self, from_unit: str, to_unit: str) -> bool:
        """Check whether a conversion path exists."""
        if from_unit == to_unit:
            return True
        key = (from_unit.lower(), to_unit.lower())
        return key in self._forward or key in self._reverse

    def list_conversions(self) -> List[Dict[str, object]]:
        """List table entries as dicts."""
        return [
            {"from": f, "to": t, "factor": factor}
            for (f, t), factor in self._forward.items()
        ]


_default_converter = UnitConverter()


def convert(value: float, from_unit: str, to_unit: str) -> float:
    """Convert with the default table. See :meth:`UnitConverter.convert`."""
    return _default_converter.convert(value, from_unit, to_unit)


def is_convertible(from_unit: str, to_unit: str) -> bool:
    return _default_converter.is_convertible(from_unit, to_unit)


def list_conversions() -> List[Dict[str, object]]:
    return _default_converter.list_conversions()
