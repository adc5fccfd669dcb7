"""
Static Reference Tables
Vial/dose mapping and the NIP monthly-needs and max-allocation tables.

All three tables are keyed by lower-cased, trimmed vaccine name and are
held in read-only mappings. A ReferenceTables value is built once at startup
and passed to the services that need unit conversion or NIP figures.
"""
import json
import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Union

logger = logging.getLogger(__name__)

# Doses per vial. None marks supplies where vials and doses are the same unit.
VACCINE_VIAL_MAPPING: Dict[str, Optional[int]] = {
    # Multi-dose vials (20 doses per vial)
    "bcg": 20,
    "bcg diluent": 20,
    "bopv": 20,

    # Standard vials (10 doses per vial)
    "pentavalent": 10,
    "ipv 10 dose": 10,
    "pcv10 (4 dose)": 10,
    "hep b (10 dose)": 10,
    "mmr": 10,
    "mr": 10,
    "hpv": 10,
    "td10": 10,

    # Single dose or special
    "tt1": 1,
    "ppv23": 1,
    "flu vaccines": 1,
    "mmr diluent": 1,
    "mr diluent": 1,

    # Supplies
    "dropper": None,
}

# NIP monthly vials needed
MONTHLY_VIALS_NEEDED: Dict[str, int] = {
    "bcg": 11,
    "bcg diluent": 11,
    "hep b": 11,
    "hep b (10 dose)": 11,
    "pentavalent": 289,
    "bopv": 18,
    "dropper": 18,
    "pcv10": 72,
    "pcv10 (4 dose)": 72,
    "ipv": 22,
    "ipv 10 dose": 22,
    "mmr": 24,
    "mmr diluent": 24,
    "mr": 24,
    "mr diluent": 24,
    "td": 22,
    "td10": 22,
    "tt": 108,
    "tt1": 108,
    "hpv": 96,
    "ppv": 96,
    "ppv23": 96,
    "flu": 11,
}

# NIP max allocation (buffer + 1 month)
MAX_ALLOCATION: Dict[str, int] = {
    "bcg": 23,
    "bcg diluent": 275,
    "hep b": 22,
    "hep b (10 dose)": 22,
    "pentavalent": 578,
    "bopv": 37,
    "dropper": 439,
    "pcv10": 145,
    "pcv10 (4 dose)": 145,
    "ipv": 43,
    "ipv 10 dose": 43,
    "mmr": 49,
    "mmr diluent": 586,
    "mr": 49,
    "mr diluent": 586,
    "td": 43,
    "td10": 43,
    "tt": 217,
    "tt1": 217,
    "hpv": 193,
    "ppv": 193,
    "ppv23": 193,
    "flu": 23,
}


def normalize_name(vaccine_name: Optional[str]) -> str:
    return (vaccine_name or "").strip().lower()


def _freeze(table: Mapping) -> Mapping:
    return MappingProxyType({normalize_name(k): v for k, v in table.items()})


@dataclass(frozen=True)
class ReferenceTables:
    """Immutable lookup tables used for unit conversion and NIP figures"""

    vial_mapping: Mapping[str, Optional[int]] = field(default_factory=lambda: _freeze(VACCINE_VIAL_MAPPING))
    monthly_vials_needed: Mapping[str, int] = field(default_factory=lambda: _freeze(MONTHLY_VIALS_NEEDED))
    max_allocations: Mapping[str, int] = field(default_factory=lambda: _freeze(MAX_ALLOCATION))

    def get_doses_per_vial(self, vaccine_name: str) -> Optional[int]:
        """Doses per vial, or None when the vaccine is unmapped or N/A"""
        return self.vial_mapping.get(normalize_name(vaccine_name)) or None

    def doses_per_vial(self, vaccine_name: str, fallback: Optional[int] = None) -> int:
        """
        Doses per vial used for vial/dose conversion

        Falls back to the stored value on the dose definition, then to 1.
        """
        mapped = self.get_doses_per_vial(vaccine_name)
        if mapped:
            return mapped
        if fallback and fallback > 0:
            return fallback
        return 1

    def vials_needed(self, vaccine_name: str, doses: int) -> int:
        """Vials needed to cover a number of doses (rounded up)"""
        per_vial = self.get_doses_per_vial(vaccine_name)
        if not per_vial:
            return doses
        return math.ceil(doses / per_vial)

    def monthly_needed(self, vaccine_name: str) -> int:
        return self.monthly_vials_needed.get(normalize_name(vaccine_name), 0)

    def max_allocation(self, vaccine_name: str) -> int:
        return self.max_allocations.get(normalize_name(vaccine_name), 0)

    def all_vial_info(self) -> List[Dict]:
        return [
            {
                "vaccine": name,
                "doses_per_vial": per_vial,
                "label": f"{per_vial} doses/vial" if per_vial else "N/A",
            }
            for name, per_vial in self.vial_mapping.items()
        ]


def load_reference_tables(path: Optional[Union[str, Path]] = None) -> ReferenceTables:
    """
    Build the reference tables, applying overrides from a JSON file

    The file may contain any of "vial_mapping", "monthly_vials_needed" and
    "max_allocation"; entries are merged over the built-in NIP values.
    """
    if path is None:
        return ReferenceTables()

    path = Path(path)
    with path.open(encoding="utf-8") as fh:
        overrides = json.load(fh)

    tables = ReferenceTables(
        vial_mapping=_freeze({**VACCINE_VIAL_MAPPING, **overrides.get("vial_mapping", {})}),
        monthly_vials_needed=_freeze({**MONTHLY_VIALS_NEEDED, **overrides.get("monthly_vials_needed", {})}),
        max_allocations=_freeze({**MAX_ALLOCATION, **overrides.get("max_allocation", {})}),
    )
    logger.info(f"Reference tables loaded from {path}")
    return tables
