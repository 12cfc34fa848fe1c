"""Central registry for the long-format sensor records and variable names.

Keeping the input column layout and the catalogue of recognised sensor
variables in a single module ensures the ingestion, unification and
formatting stages share the same naming, and that tests can detect drift
when a variable is renamed upstream.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar, Iterator, Mapping, Tuple

import pyarrow as pa

__all__ = [
    "AIR_PRESSURE",
    "DEPTH",
    "DISCHARGE",
    "DISCHARGE_EXTERNAL",
    "DO_CONCENTRATION",
    "DO_SAT_CONCENTRATION",
    "DO_SAT_PERCENT",
    "LEVEL",
    "LEVEL_EXTERNAL",
    "LIGHT_LUX",
    "LIGHT_PAR",
    "ObservationRecordSchema",
    "SchemaField",
    "VariableField",
    "VariableRegistry",
    "WATER_PRESSURE",
    "WATER_TEMPERATURE",
]

DO_CONCENTRATION = "DO_mgL"
DO_SAT_PERCENT = "DOsat_pct"
DO_SAT_CONCENTRATION = "satDO_mgL"
WATER_PRESSURE = "WaterPres_kPa"
DEPTH = "Depth_m"
LEVEL = "Level_m"
LEVEL_EXTERNAL = "USGSLevel_m"
WATER_TEMPERATURE = "WaterTemp_C"
LIGHT_PAR = "Light_PAR"
LIGHT_LUX = "Light_lux"
AIR_PRESSURE = "AirPres_kPa"
DISCHARGE = "Discharge_m3s"
DISCHARGE_EXTERNAL = "USGSDischarge_m3s"


@dataclass(frozen=True, slots=True)
class SchemaField:
    """Represents a column of the long-format observation table."""

    name: str
    logical_type: str
    description: str
    required: bool = True

    def entry(self) -> Mapping[str, object]:
        """Return a mapping suitable for JSON documentation."""

        return {
            "name": self.name,
            "type": self.logical_type,
            "description": self.description,
            "required": self.required,
        }


class ObservationRecordSchema:
    """Canonical schema of the records delivered by the acquisition layer.

    Rows are keyed by ``(variable, DateTime_UTC)``. The flag columns are
    optional: they are only required when flagged values must be removed.
    """

    _ARROW_TYPES: ClassVar[Mapping[str, pa.DataType]] = {
        "datetime": pa.timestamp("us", tz="UTC"),
        "string": pa.string(),
        "number": pa.float64(),
    }

    _FIELDS: ClassVar[Tuple[SchemaField, ...]] = (
        SchemaField("region", "string", "Region code of the monitoring site.", required=False),
        SchemaField("site", "string", "Site code within the region.", required=False),
        SchemaField("DateTime_UTC", "datetime", "Observation timestamp (UTC)."),
        SchemaField("variable", "string", "Sensor variable name, e.g. DO_mgL."),
        SchemaField("value", "number", "Observed value in the variable's native unit."),
        SchemaField(
            "flagtype",
            "string",
            "QA/QC flag: Interesting, Questionable or Bad Data (null when unflagged).",
            required=False,
        ),
        SchemaField("flagcomment", "string", "Free-text QA/QC comment.", required=False),
    )

    def __iter__(self) -> Iterator[SchemaField]:
        return iter(self._FIELDS)

    def field_names(self) -> Tuple[str, ...]:
        """Return the ordered list of column names."""

        return tuple(field.name for field in self._FIELDS)

    def required_columns(self) -> Tuple[str, ...]:
        """Return the columns every record set must expose."""

        return tuple(field.name for field in self._FIELDS if field.required)

    def to_pyarrow_schema(self) -> pa.Schema:
        """Materialise the expected PyArrow schema."""

        return pa.schema(
            [pa.field(field.name, self._ARROW_TYPES[field.logical_type]) for field in self._FIELDS]
        )

    def columns(self) -> Tuple[Mapping[str, object], ...]:
        return tuple(field.entry() for field in self._FIELDS)


@dataclass(frozen=True, slots=True)
class VariableField:
    """Sensor variable recognised by the conditioning pipeline."""

    name: str
    unit: str
    description: str
    quantity: str
    external: bool = False


class VariableRegistry:
    """Catalogue of variables the pipeline knows how to interpret.

    ``quantity`` groups variables that measure the same physical thing so
    the unification stage can spot proxies (e.g. local vs reference level).
    """

    _VARIABLES: ClassVar[Tuple[VariableField, ...]] = (
        VariableField(DO_CONCENTRATION, "mg/L", "Dissolved oxygen concentration.", "do"),
        VariableField(DO_SAT_PERCENT, "%", "Dissolved oxygen percent saturation.", "do_sat"),
        VariableField(
            DO_SAT_CONCENTRATION,
            "mg/L",
            "Dissolved oxygen concentration at saturation.",
            "do_sat",
        ),
        VariableField(WATER_PRESSURE, "kPa", "Absolute water pressure at the sensor.", "water_pressure"),
        VariableField(DEPTH, "m", "Vertical distance from streambed to surface.", "depth"),
        VariableField(LEVEL, "m", "Stage: vertical distance from a datum to surface.", "level"),
        VariableField(
            LEVEL_EXTERNAL,
            "m",
            "Stage reported by a reference gauging network.",
            "level",
            external=True,
        ),
        VariableField(WATER_TEMPERATURE, "degC", "Water temperature.", "water_temperature"),
        VariableField(LIGHT_PAR, "umol/m2/s", "Photosynthetically active radiation.", "light"),
        VariableField(LIGHT_LUX, "lux", "Illuminance.", "light"),
        VariableField(AIR_PRESSURE, "kPa", "Barometric air pressure.", "air_pressure"),
        VariableField(DISCHARGE, "m3/s", "Stream discharge.", "discharge"),
        VariableField(
            DISCHARGE_EXTERNAL,
            "m3/s",
            "Discharge reported by a reference gauging network.",
            "discharge",
            external=True,
        ),
    )

    def __iter__(self) -> Iterator[VariableField]:
        return iter(self._VARIABLES)

    def names(self) -> Tuple[str, ...]:
        return tuple(field.name for field in self._VARIABLES)

    def get(self, name: str) -> VariableField | None:
        for field in self._VARIABLES:
            if field.name == name:
                return field
        return None

    def unit_for(self, name: str) -> str | None:
        field = self.get(name)
        return field.unit if field is not None else None

    def by_quantity(self, quantity: str) -> Tuple[VariableField, ...]:
        """Return every variable measuring *quantity*, primary names first."""

        matches = [field for field in self._VARIABLES if field.quantity == quantity]
        return tuple(sorted(matches, key=lambda field: field.external))
