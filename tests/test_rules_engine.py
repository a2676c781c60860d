"""
Tests for the service report rules engine
"""
import pytest
from datetime import date, datetime

from services.rules_engine import (
    evaluate_condition,
    evaluate_conditions,
    evaluate_auto_requirements,
    evaluate_fee_suggestions,
    evaluate_formula,
    evaluate_default_values,
    evaluate_template,
    system_value,
    validate_submit,
)

HEAVY_USE = {
    'id': 'r-heavy',
    'name': 'Heavy use needs photos',
    'conditions': [{'field': 'waste_level', 'operator': 'greater_than', 'value': 80}],
    'required_fields': ['pump_notes'],
    'evidence_requirements': {'min_photos': 2, 'gps_required': True, 'signature_required': True},
}

DAMAGE_FEE = {
    'id': 'f-damage',
    'fee_id': 'fee-damage',
    'fee_name': 'Damage fee',
    'fee_amount': 75,
    'scope': 'per_unit',
    'conditions': [{'field': 'condition', 'operator': 'equals', 'value': 'damaged'}],
    'auto_add': True,
}


@pytest.mark.unit
class TestConditions:
    """Tests for condition operators and AND/OR logic"""

    @pytest.mark.parametrize('operator,value,data_value,expected', [
        ('equals', 'yes', 'yes', True),
        ('not_equals', 'yes', 'no', True),
        ('greater_than', 80, '90', True),
        ('less_than', 10, 12, False),
        ('contains', 'vandal', 'graffiti and vandalism', True),
        ('in_list', ['a', 'b'], 'b', True),
        ('in_list', 'a,b', 'a', False),
        ('bogus', 1, 1, False),
    ])
    def test_operators(self, operator, value, data_value, expected):
        condition = {'field': 'x', 'operator': operator, 'value': value}
        assert evaluate_condition(condition, {'x': data_value}) is expected

    def test_non_numeric_comparison_is_false(self):
        assert evaluate_condition({'field': 'x', 'operator': 'greater_than', 'value': 5}, {'x': 'lots'}) is False

    def test_empty_list_never_matches(self):
        assert evaluate_conditions([], {'x': 1}) is False

    def test_and_requires_all(self):
        conditions = [
            {'field': 'a', 'operator': 'equals', 'value': 1},
            {'field': 'b', 'operator': 'equals', 'value': 2},
        ]
        assert evaluate_conditions(conditions, {'a': 1, 'b': 2}) is True
        assert evaluate_conditions(conditions, {'a': 1, 'b': 3}) is False

    def test_any_or_switches_to_any(self):
        conditions = [
            {'field': 'a', 'operator': 'equals', 'value': 1},
            {'field': 'b', 'operator': 'equals', 'value': 2, 'logic': 'OR'},
        ]
        assert evaluate_conditions(conditions, {'a': 0, 'b': 2}) is True


@pytest.mark.unit
class TestAutoRequirements:
    """Tests for conditional required fields"""

    def test_triggered_rule_adds_fields_and_evidence(self):
        result = evaluate_auto_requirements({'waste_level': 95}, [HEAVY_USE])
        assert result['required_fields'] == ['pump_notes']
        assert result['evidence_requirements'] == {'r-heavy': HEAVY_USE['evidence_requirements']}

    def test_inactive_rule_ignored(self):
        rule = dict(HEAVY_USE, is_active=False)
        assert evaluate_auto_requirements({'waste_level': 95}, [rule])['required_fields'] == []

    def test_fields_are_deduplicated(self):
        other = dict(HEAVY_USE, id='r-other', evidence_requirements=None)
        result = evaluate_auto_requirements({'waste_level': 95}, [HEAVY_USE, other])
        assert result['required_fields'] == ['pump_notes']
        assert len(result['triggered_rules']) == 2


@pytest.mark.unit
class TestFeeSuggestions:
    """Tests for per-unit and per-job fee rules"""

    def test_per_unit_fee_for_each_matching_unit(self):
        units = [{'unit_id': 'PT-1', 'condition': 'damaged'},
                 {'unit_id': 'PT-2', 'condition': 'ok'},
                 {'condition': 'damaged'}]
        fees = evaluate_fee_suggestions({}, [DAMAGE_FEE], units)
        assert [f['unit_id'] for f in fees] == ['PT-1', None]
        assert fees[0]['reason'] == 'From unit PT-1: condition equals damaged'
        assert fees[1]['reason'].startswith('From unit #3:')
        assert fees[0]['auto_added'] is True

    def test_prevent_duplicates_keeps_first(self):
        rule = dict(DAMAGE_FEE, prevent_duplicates=True)
        units = [{'unit_id': 'PT-1', 'condition': 'damaged'}, {'unit_id': 'PT-2', 'condition': 'damaged'}]
        fees = evaluate_fee_suggestions({}, [rule], units)
        assert len(fees) == 1

    def test_per_job_fee(self):
        rule = {'id': 'f-after-hours', 'fee_id': 'fee-ah', 'fee_name': 'After hours', 'fee_amount': 40,
                'scope': 'per_job',
                'conditions': [{'field': 'after_hours', 'operator': 'equals', 'value': True}]}
        fees = evaluate_fee_suggestions({'after_hours': True}, [rule])
        assert fees[0]['fee_amount'] == 40
        assert fees[0]['auto_added'] is False
        assert evaluate_fee_suggestions({'after_hours': False}, [rule]) == []


@pytest.mark.unit
class TestDefaultValues:
    """Tests for prefilled values"""

    def test_formula_and_system_and_static(self):
        rules = [
            {'field_id': 'gallons', 'source': 'formula', 'formula': '{units} * 10 + 5'},
            {'field_id': 'visit_date', 'source': 'system', 'source_field': 'current_date'},
            {'field_id': 'crew', 'source': 'static', 'static_value': 'North'},
            {'field_id': 'site', 'source': 'job_data', 'source_field': 'site_name'},
        ]
        defaults = evaluate_default_values({'units': 4, 'site_name': 'Fairgrounds'}, rules)
        assert defaults['gallons'] == 45
        assert defaults['crew'] == 'North'
        assert defaults['site'] == 'Fairgrounds'
        assert len(defaults['visit_date']) == 10

    def test_last_visit_within_threshold(self):
        rule = {'field_id': 'lock_code', 'source': 'last_visit', 'source_field': 'lock_code', 'days_threshold': 30}
        recent = {'date': '2026-05-20', 'lock_code': '4411'}
        stale = {'date': '2026-01-01', 'lock_code': '0000'}
        assert evaluate_default_values({}, [rule], recent, today=date(2026, 6, 1)) == {'lock_code': '4411'}
        assert evaluate_default_values({}, [rule], stale, today=date(2026, 6, 1)) == {}

    def test_conditions_gate_defaults(self):
        rule = {'field_id': 'crew', 'source': 'static', 'static_value': 'Event crew',
                'conditions': [{'field': 'job_type', 'operator': 'equals', 'value': 'delivery'}]}
        assert evaluate_default_values({'job_type': 'pickup'}, [rule]) == {}

    def test_formula_rejects_code(self):
        assert evaluate_formula('__import__("os").getcwd()', {}) is None
        assert evaluate_formula('{missing} + 1', {}) is None
        assert evaluate_formula('1 / 0', {}) is None

    def test_formula_powers_are_bounded(self):
        assert evaluate_formula('{x} ** 2', {'x': 3}) == 9.0
        assert evaluate_formula('{x} ** {y} ** {y}', {'x': 9, 'y': 9}) is None
        assert evaluate_formula('10 ** 400', {}) is None
        assert evaluate_formula('1e300 ** 2', {}) is None
        assert evaluate_formula('(0 - 8) ** 0.5', {}) is None

    def test_system_values(self):
        now = datetime(2026, 6, 1, 8, 30, 15)
        assert system_value('current_date', now) == '2026-06-01'
        assert system_value('current_time', now) == '08:30:15'
        assert system_value('unknown', now) is None


@pytest.mark.unit
class TestSubmitValidation:
    """Tests for blocking issues before submit"""

    def test_report_level_required_field(self):
        issues = validate_submit({'waste_level': 95}, [HEAVY_USE])
        assert issues == [{'field_id': 'pump_notes', 'field_label': 'pump notes',
                           'issue_type': 'required_field', 'message': 'Required field missing'}]

    def test_unit_loop_checks_evidence(self):
        units = [
            {'unit_id': 'PT-1', 'waste_level': 95, 'pump_notes': 'full', 'before_photos': ['a.jpg'],
             'gps_location': None, 'signature': 'sig'},
            {'unit_id': 'PT-2', 'waste_level': 10},
        ]
        issues = validate_submit({}, [HEAVY_USE], units, {'enabled': True})
        assert {(i['unit_id'], i['field_id']) for i in issues} == {('PT-1', 'photos'), ('PT-1', 'gps_location')}
        assert all(i['issue_type'] == 'missing_evidence' for i in issues)

    def test_evaluate_template_bundles_everything(self):
        rules = {
            'auto_requirements': [HEAVY_USE],
            'fee_suggestions': [DAMAGE_FEE],
            'default_values': [{'field_id': 'crew', 'source': 'static', 'static_value': 'North'}],
        }
        result = evaluate_template(rules, {'waste_level': 95, 'pump_notes': 'done'},
                                   units=[{'unit_id': 'PT-1', 'condition': 'damaged'}])
        assert result['can_submit'] is True
        assert result['required_fields'] == ['pump_notes']
        assert result['fees'][0]['fee_id'] == 'fee-damage'
        assert result['defaults'] == {'crew': 'North'}
        assert result['audit']['rules_evaluated'][0]['triggered'] is True
        assert result['audit']['fees_suggested'][0]['auto_added'] is True
