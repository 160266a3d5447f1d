"""
Tests for the packaged YAML defaults.
"""
from decimal import Decimal

import pytest

from rental_ledger import config


class TestDefaults:

    def test_default_settings(self):
        s = config.load_default_settings()
        assert s.id == 'global'
        assert s.additional_charges.internet == Decimal('3000')
        assert s.additional_charges.total() == Decimal('9500')
        assert (s.daily_rates.p1, s.daily_rates.p4) == (Decimal('10000'), Decimal('15000'))
        assert s.booking_deposit_percentage == Decimal('30')

    def test_unit_catalogue(self):
        units = config.load_units()
        assert len(units) == 11
        types = [u.type for u in units]
        assert types.count('apartment_monthly') == 6
        assert types.count('apartment_daily') == 3
        assert types.count('commercial_monthly') == 2

    def test_cached(self):
        assert config.load_units() is not config.load_units()
        assert config._load_yaml(config.UNITS_PATH) is config._load_yaml(config.UNITS_PATH)


class TestCustomFiles:

    def test_custom_units_file(self, tmp_path):
        path = tmp_path / 'units.yaml'
        path.write_text("units:\n  - {id: x-1, name: Loft, type: apartment_daily}\n")
        units = config.load_units(path)
        assert [(u.id, u.name, u.type) for u in units] == [('x-1', 'Loft', 'apartment_daily')]

    def test_unknown_unit_type(self, tmp_path):
        path = tmp_path / 'units.yaml'
        path.write_text("units:\n  - {id: x-1, name: Loft, type: castle}\n")
        with pytest.raises(ValueError, match='castle'):
            config.load_units(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            config.load_default_settings(tmp_path / 'nope.yaml')
