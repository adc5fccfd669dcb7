"""
Tests for the static reference tables
"""

import json
import pytest

from vaxsync.services.reference_tables import ReferenceTables, load_reference_tables


class TestVialMapping:
    """Doses per vial lookups"""

    def test_mapped_vaccine(self, reference_tables: ReferenceTables):
        assert reference_tables.doses_per_vial("BCG") == 20
        assert reference_tables.doses_per_vial("  Pentavalent ") == 10

    def test_unmapped_vaccine_defaults_to_one(self, reference_tables: ReferenceTables):
        assert reference_tables.doses_per_vial("Unknown Vaccine") == 1

    def test_unmapped_vaccine_uses_stored_value(self, reference_tables: ReferenceTables):
        assert reference_tables.doses_per_vial("Unknown Vaccine", fallback=5) == 5

    def test_mapping_wins_over_stored_value(self, reference_tables: ReferenceTables):
        assert reference_tables.doses_per_vial("bopv", fallback=5) == 20

    def test_not_applicable_supply(self, reference_tables: ReferenceTables):
        assert reference_tables.get_doses_per_vial("Dropper") is None
        assert reference_tables.doses_per_vial("Dropper") == 1

    def test_vials_needed_rounds_up(self, reference_tables: ReferenceTables):
        assert reference_tables.vials_needed("Pentavalent", 25) == 3
        assert reference_tables.vials_needed("Pentavalent", 30) == 3

    def test_vials_needed_for_not_applicable(self, reference_tables: ReferenceTables):
        assert reference_tables.vials_needed("Dropper", 7) == 7

    def test_all_vial_info_labels(self, reference_tables: ReferenceTables):
        info = {entry["vaccine"]: entry for entry in reference_tables.all_vial_info()}

        assert info["bcg"]["label"] == "20 doses/vial"
        assert info["dropper"]["label"] == "N/A"


class TestNipTables:
    """Monthly needs and max allocation"""

    def test_known_figures(self, reference_tables: ReferenceTables):
        assert reference_tables.monthly_needed("Pentavalent") == 289
        assert reference_tables.max_allocation("Pentavalent") == 578
        assert reference_tables.max_allocation("TT1") == 217

    def test_unmapped_is_zero(self, reference_tables: ReferenceTables):
        assert reference_tables.monthly_needed("Unknown") == 0
        assert reference_tables.max_allocation("Unknown") == 0

    def test_tables_are_read_only(self, reference_tables: ReferenceTables):
        with pytest.raises(TypeError):
            reference_tables.max_allocations["bcg"] = 1


class TestLoadReferenceTables:
    """Overrides from a JSON file"""

    def test_defaults_without_file(self):
        assert load_reference_tables(None).max_allocation("bcg") == 23

    def test_overrides_are_merged(self, tmp_path):
        path = tmp_path / "tables.json"
        path.write_text(json.dumps({
            "vial_mapping": {"New Vaccine": 4},
            "max_allocation": {"BCG": 30},
        }))

        tables = load_reference_tables(path)

        assert tables.doses_per_vial("new vaccine") == 4
        assert tables.max_allocation("bcg") == 30
        assert tables.max_allocation("pentavalent") == 578
