"""
Service report rules engine.

Evaluates the logic attached to a service report template against the data a
driver is filling in: which fields become required, which fees to suggest,
which fields to prefill and whether the report may be submitted.

Rules are plain dicts as stored in MaintenanceReportTemplate.rules:

    condition:        {'field', 'operator', 'value', 'logic': 'AND' | 'OR'}
    auto requirement: {'id', 'name', 'is_active', 'conditions', 'required_fields',
                       'evidence_requirements': {'min_photos', 'gps_required', 'signature_required'}}
    fee suggestion:   {'id', 'fee_id', 'fee_name', 'fee_amount', 'scope': 'per_unit' | 'per_job',
                       'is_active', 'conditions', 'prevent_duplicates', 'auto_add'}
    default value:    {'field_id', 'source', 'source_field', 'static_value', 'formula',
                       'days_threshold', 'conditions'}
"""

import ast
import logging
import operator
import re
from datetime import datetime, date
from typing import List, Dict, Any, Optional

logger = logging.getLogger(__name__)

OPERATORS = ('equals', 'not_equals', 'greater_than', 'less_than', 'contains', 'in_list')
DEFAULT_SOURCES = ('job_data', 'last_visit', 'static', 'system', 'formula')

MAX_EXPONENT = 100


def _bounded_pow(base, exponent):
    if abs(exponent) > MAX_EXPONENT:
        raise ValueError(f"Exponent {exponent} exceeds {MAX_EXPONENT}")
    result = float(base) ** float(exponent)
    if isinstance(result, complex):
        raise ValueError("Fractional power of a negative number")
    return result


_BIN_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: _bounded_pow,
}
_UNARY_OPS = {
    ast.UAdd: operator.pos,
    ast.USub: operator.neg,
}
_FIELD_REF = re.compile(r'\{(\w+)\}')


def _number(value) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return float('nan')


# =============================================================================
# CONDITIONS
# =============================================================================

def evaluate_condition(condition: Dict[str, Any], data: Dict[str, Any]) -> bool:
    field_value = data.get(condition.get('field'))
    expected = condition.get('value')
    op = condition.get('operator')

    if op == 'equals':
        return field_value == expected
    if op == 'not_equals':
        return field_value != expected
    if op == 'greater_than':
        return _number(field_value) > _number(expected)
    if op == 'less_than':
        return _number(field_value) < _number(expected)
    if op == 'contains':
        return str(expected) in str(field_value or '')
    if op == 'in_list':
        return isinstance(expected, list) and field_value in expected
    return False


def evaluate_conditions(conditions: List[Dict[str, Any]], data: Dict[str, Any]) -> bool:
    """
    True when the conditions hold. Any condition marked logic 'OR' switches
    the whole list to OR; otherwise every condition must hold. An empty list
    is never true.
    """
    if not conditions:
        return False
    if any(c.get('logic') == 'OR' for c in conditions):
        return any(evaluate_condition(c, data) for c in conditions)
    return all(evaluate_condition(c, data) for c in conditions)


def condition_reason(conditions: List[Dict[str, Any]], data: Dict[str, Any]) -> str:
    for condition in conditions:
        if evaluate_condition(condition, data):
            return f"{condition.get('field')} {condition.get('operator', '').replace('_', ' ')} {condition.get('value')}"
    return 'Condition met'


# =============================================================================
# AUTO REQUIREMENTS & FEES
# =============================================================================

def evaluate_auto_requirements(data: Dict[str, Any], rules: List[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Returns:
        {'required_fields': [...], 'evidence_requirements': {rule_id: {...}},
         'triggered_rules': [...]}
    """
    required: List[str] = []
    evidence: Dict[str, Dict] = {}
    triggered = []

    for rule in rules:
        if not rule.get('is_active', True):
            continue
        if not evaluate_conditions(rule.get('conditions') or [], data):
            continue
        triggered.append(rule)
        for field in rule.get('required_fields') or []:
            if field not in required:
                required.append(field)
        if rule.get('evidence_requirements'):
            evidence[rule.get('id')] = rule['evidence_requirements']

    return {'required_fields': required, 'evidence_requirements': evidence, 'triggered_rules': triggered}


def evaluate_fee_suggestions(data: Dict[str, Any], fee_rules: List[Dict[str, Any]],
                             units: List[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    """Fees recommended by active per-unit and per-job fee rules."""
    recommendations = []
    seen = set()

    def suggest(rule, reason, unit_id=None):
        recommendations.append({
            'fee_id': rule.get('fee_id'),
            'fee_name': rule.get('fee_name'),
            'fee_amount': rule.get('fee_amount', 0),
            'reason': reason,
            'unit_id': unit_id,
            'auto_added': bool(rule.get('auto_add')),
            'rule_id': rule.get('id'),
        })

    for rule in fee_rules:
        if not rule.get('is_active', True):
            continue
        conditions = rule.get('conditions') or []
        prevent = bool(rule.get('prevent_duplicates'))

        if rule.get('scope') == 'per_unit' and units:
            for index, unit in enumerate(units):
                if not evaluate_conditions(conditions, unit):
                    continue
                label = unit.get('unit_id') or f"#{index + 1}"
                key = rule.get('fee_id') if prevent else f"{rule.get('fee_id')}-{unit.get('unit_id') or index}"
                if key in seen:
                    continue
                suggest(rule, f"From unit {label}: {condition_reason(conditions, unit)}", unit.get('unit_id'))
                if prevent:
                    seen.add(key)

        elif rule.get('scope') == 'per_job':
            if not evaluate_conditions(conditions, data):
                continue
            key = rule.get('fee_id')
            if prevent and key in seen:
                continue
            suggest(rule, condition_reason(conditions, data))
            if prevent:
                seen.add(key)

    return recommendations


# =============================================================================
# DEFAULT VALUES
# =============================================================================

def _eval_node(node):
    if isinstance(node, ast.Expression):
        return _eval_node(node.body)
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)) \
            and not isinstance(node.value, bool):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _BIN_OPS:
        return _BIN_OPS[type(node.op)](_eval_node(node.left), _eval_node(node.right))
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_eval_node(node.operand))
    raise ValueError(f"Unsupported expression element: {type(node).__name__}")


def evaluate_formula(formula: str, data: Dict[str, Any]) -> Optional[float]:
    """
    Substitute {field} references from data and evaluate the arithmetic.
    Returns None for an empty, non-arithmetic or failing formula.
    """
    if not formula:
        return None
    expression = _FIELD_REF.sub(lambda m: str(data.get(m.group(1), m.group(0))), formula)
    try:
        return _eval_node(ast.parse(expression, mode='eval'))
    except (SyntaxError, ValueError, TypeError, ZeroDivisionError, OverflowError) as e:
        logger.warning(f"Formula '{formula}' could not be evaluated: {e}")
        return None


def system_value(field: str, now: datetime = None):
    now = now or datetime.utcnow()
    if field == 'current_date':
        return now.date().isoformat()
    if field == 'current_time':
        return now.strftime('%H:%M:%S')
    if field == 'current_datetime':
        return now.isoformat()
    return None


def evaluate_default_values(job_data: Dict[str, Any], rules: List[Dict[str, Any]],
                            last_visit: Dict[str, Any] = None,
                            today: date = None) -> Dict[str, Any]:
    """
    Prefill values keyed by field_id. A rule with conditions applies only
    when they hold against job_data. last_visit values are used only when
    the visit ('date') falls within the rule's days_threshold.
    """
    today = today or date.today()
    defaults = {}

    for rule in rules:
        conditions = rule.get('conditions') or []
        if conditions and not evaluate_conditions(conditions, job_data):
            continue

        source = rule.get('source')
        source_field = rule.get('source_field')
        value = None

        if source == 'job_data':
            value = job_data.get(source_field) if source_field else None
        elif source == 'last_visit':
            if last_visit and source_field and last_visit.get('date') and rule.get('days_threshold'):
                visit_date = last_visit['date']
                if isinstance(visit_date, str):
                    visit_date = date.fromisoformat(visit_date[:10])
                if (today - visit_date).days <= rule['days_threshold']:
                    value = last_visit.get(source_field)
        elif source == 'static':
            value = rule.get('static_value')
        elif source == 'system':
            value = system_value(source_field or '')
        elif source == 'formula':
            value = evaluate_formula(rule.get('formula') or '', job_data)

        if value is not None:
            defaults[rule.get('field_id')] = value

    return defaults


# =============================================================================
# SUBMIT VALIDATION & AUDIT
# =============================================================================

def _is_blank(value) -> bool:
    return not value or (isinstance(value, list) and len(value) == 0)


def _issue(field_id: str, issue_type: str, message: str, unit: Dict = None,
           index: int = None, label: str = None) -> Dict[str, Any]:
    issue = {
        'field_id': field_id,
        'field_label': label or field_id.replace('_', ' '),
        'issue_type': issue_type,
        'message': message,
    }
    if unit is not None:
        issue['unit_id'] = unit.get('unit_id')
        issue['unit_index'] = index
    return issue


def validate_submit(data: Dict[str, Any], auto_requirements: List[Dict[str, Any]],
                    units: List[Dict[str, Any]] = None,
                    unit_loop: Dict[str, Any] = None) -> List[Dict[str, Any]]:
    """
    Blocking issues for a report submission. With the unit loop enabled every
    unit is checked for its required fields and evidence (photos, GPS,
    signature); otherwise only the report-level required fields are checked.
    """
    issues = []

    if unit_loop and unit_loop.get('enabled') and units:
        for index, unit in enumerate(units):
            result = evaluate_auto_requirements(unit, auto_requirements)
            for field in result['required_fields']:
                if _is_blank(unit.get(field)):
                    issues.append(_issue(field, 'required_field', 'Required field missing', unit, index))

            for requirements in result['evidence_requirements'].values():
                min_photos = requirements.get('min_photos')
                if min_photos:
                    photos = sum(len(v) for k, v in unit.items() if 'photo' in k and isinstance(v, list))
                    if photos < min_photos:
                        issues.append(_issue('photos', 'missing_evidence',
                                             f"Requires at least {min_photos} photo(s), found {photos}",
                                             unit, index, 'Photos'))
                if requirements.get('gps_required') and not unit.get('gps_location'):
                    issues.append(_issue('gps_location', 'missing_evidence', 'GPS lock required',
                                         unit, index, 'GPS Location'))
                if requirements.get('signature_required') and not unit.get('signature'):
                    issues.append(_issue('signature', 'missing_evidence', 'Signature required',
                                         unit, index, 'Signature'))
    else:
        result = evaluate_auto_requirements(data, auto_requirements)
        for field in result['required_fields']:
            if _is_blank(data.get(field)):
                issues.append(_issue(field, 'required_field', 'Required field missing'))

    return issues


def automation_audit(data: Dict[str, Any], auto_requirements: List[Dict[str, Any]],
                     fee_rules: List[Dict[str, Any]], units: List[Dict[str, Any]] = None,
                     unit_loop: Dict[str, Any] = None) -> Dict[str, Any]:
    """Summary of what the rules did for one report, kept alongside the submission."""
    timestamp = datetime.utcnow().isoformat()
    requirements = evaluate_auto_requirements(data, auto_requirements)
    triggered_ids = {r.get('id') for r in requirements['triggered_rules']}
    fees = evaluate_fee_suggestions(data, fee_rules, units)

    return {
        'rules_evaluated': [
            {'rule_id': r.get('id'), 'rule_name': r.get('name'),
             'triggered': r.get('id') in triggered_ids, 'timestamp': timestamp}
            for r in auto_requirements
        ],
        'auto_requirements_triggered': [
            {'rule_id': r.get('id'), 'rule_name': r.get('name'),
             'fields_required': r.get('required_fields') or []}
            for r in requirements['triggered_rules']
        ],
        'fees_suggested': [
            {k: fee[k] for k in ('fee_id', 'fee_name', 'fee_amount', 'reason', 'auto_added')}
            for fee in fees
        ],
        'validation_results': {
            'blocking_issues': validate_submit(data, auto_requirements, units, unit_loop),
            'warnings': [],
        },
    }


def evaluate_template(rules: Dict[str, Any], data: Dict[str, Any],
                      units: List[Dict[str, Any]] = None, job_data: Dict[str, Any] = None,
                      last_visit: Dict[str, Any] = None) -> Dict[str, Any]:
    """
    Run every rule group of a template's logic against report data.

    Args:
        rules: {'auto_requirements', 'fee_suggestions', 'default_values', 'unit_loop'}
        data: report-level form data
        units: per-unit form data for unit-loop templates
        job_data: job fields for default values
        last_visit: previous report data with its 'date'
    """
    auto_requirements = rules.get('auto_requirements') or []
    fee_rules = rules.get('fee_suggestions') or []
    unit_loop = rules.get('unit_loop')
    issues = validate_submit(data, auto_requirements, units, unit_loop)
    return {
        'required_fields': evaluate_auto_requirements(data, auto_requirements)['required_fields'],
        'fees': evaluate_fee_suggestions(data, fee_rules, units),
        'defaults': evaluate_default_values(job_data or {}, rules.get('default_values') or [], last_visit),
        'issues': issues,
        'can_submit': not issues,
        'audit': automation_audit(data, auto_requirements, fee_rules, units, unit_loop),
    }
