from __future__ import annotations

import math
import re
from dataclasses import dataclass
from dataclasses import field
from typing import Any

from settings.schema import MULTI_TYPES
from settings.schema import SettingDefinition
from settings.schema import SettingsSchema


LIMIT_KEYS = ("min", "max", "minLength", "maxLength", "minItems", "maxItems")

# setting type -> (soft min key, soft max key, noun)
_HARD_LIMIT_GROUPS = {
    "number": ("min", "max"),
    "string": ("minLength", "maxLength"),
}
for _multi in MULTI_TYPES:
    _HARD_LIMIT_GROUPS[_multi] = ("minItems", "maxItems")


@dataclass
class ValidationError:
    field: str
    message: str
    value: Any


@dataclass
class ValidationResult:
    errors: list[ValidationError] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not self.errors


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def get_effective_limits(definition: SettingDefinition, override: dict[str, Any] | None = None) -> dict[str, Any]:
    validation = definition.validation or {}
    override = override or {}
    return {key: override[key] if override.get(key) is not None else validation.get(key) for key in LIMIT_KEYS}


def _absolute_key(key: str) -> str:
    return "absolute" + key[0].upper() + key[1:]


def hard_limit_keys(setting_type: str) -> tuple[str, ...]:
    """Override keys that apply to a setting type; empty when it takes none."""
    return _HARD_LIMIT_GROUPS.get(setting_type, ())


def validate_hard_limits(limits: dict[str, Any], rules: dict[str, Any] | None, setting_type: str) -> str | None:
    """Hard-limit overrides may not leave the absolute bounds, and min may not exceed max."""
    if setting_type not in _HARD_LIMIT_GROUPS:
        return None
    min_key, max_key = _HARD_LIMIT_GROUPS[setting_type]
    for key in (min_key, max_key):
        if limits.get(key) is not None and not _is_number(limits[key]):
            return f"Hard limit {key} must be a number"
    if not rules:
        return None
    abs_min = rules.get(_absolute_key(min_key))
    abs_max = rules.get(_absolute_key(max_key))

    for key in (min_key, max_key):
        value = limits.get(key)
        if value is None:
            continue
        if abs_min is not None and value < abs_min:
            return f"Hard limit {key} ({value}) cannot be below absolute minimum ({abs_min})"
        if abs_max is not None and value > abs_max:
            return f"Hard limit {key} ({value}) cannot exceed absolute maximum ({abs_max})"

    low, high = limits.get(min_key), limits.get(max_key)
    if low is not None and high is not None and low > high:
        return f"Hard limit {min_key} ({low}) cannot be greater than {max_key} ({high})"
    return None


def validate_value(value: Any, rules: dict[str, Any] | None, setting_type: str) -> str | None:
    """Return an error message, or None when the value is acceptable."""
    if not rules:
        return None

    if rules.get("required"):
        if value is None:
            return "This field is required"
        if isinstance(value, str) and not value.strip():
            return "This field is required"
        if isinstance(value, list) and not value:
            return "At least one selection is required"

    if value is None or value == "":
        return None

    if setting_type == "number" and _is_number(value):
        if isinstance(value, float) and math.isnan(value):
            return "Must be a valid number"
        if rules.get("absoluteMin") is not None and value < rules["absoluteMin"]:
            return f"Value cannot be below {rules['absoluteMin']}"
        if rules.get("absoluteMax") is not None and value > rules["absoluteMax"]:
            return f"Value cannot exceed {rules['absoluteMax']}"
        if rules.get("min") is not None and value < rules["min"]:
            return f"Value must be at least {rules['min']}"
        if rules.get("max") is not None and value > rules["max"]:
            return f"Value must be at most {rules['max']}"

    if setting_type == "string" and isinstance(value, str):
        length = len(value)
        if rules.get("absoluteMinLength") is not None and length < rules["absoluteMinLength"]:
            return f"Length cannot be below {rules['absoluteMinLength']} characters"
        if rules.get("absoluteMaxLength") is not None and length > rules["absoluteMaxLength"]:
            return f"Length cannot exceed {rules['absoluteMaxLength']} characters"
        if rules.get("minLength") is not None and length < rules["minLength"]:
            return f"Must be at least {rules['minLength']} characters"
        if rules.get("maxLength") is not None and length > rules["maxLength"]:
            return f"Must be at most {rules['maxLength']} characters"
        pattern = rules.get("pattern")
        if pattern:
            try:
                if not re.search(pattern, value):
                    return rules.get("patternMessage") or "Value does not match required format"
            except re.error:
                print(f"[SettingsValidation] Invalid regex pattern: {pattern}")

    if isinstance(value, list):
        count = len(value)
        if rules.get("absoluteMinItems") is not None and count < rules["absoluteMinItems"]:
            return f"Cannot select fewer than {rules['absoluteMinItems']} item(s)"
        if rules.get("absoluteMaxItems") is not None and count > rules["absoluteMaxItems"]:
            return f"Cannot select more than {rules['absoluteMaxItems']} item(s)"
        if rules.get("minItems") is not None and count < rules["minItems"]:
            return f"Select at least {rules['minItems']} item(s)"
        if rules.get("maxItems") is not None and count > rules["maxItems"]:
            return f"Select at most {rules['maxItems']} item(s)"
    return None


def validate_setting_value(value: Any, definition: SettingDefinition, override: dict[str, Any] | None = None) -> str | None:
    rules = dict(definition.validation or {})
    if override:
        rules.update({k: v for k, v in get_effective_limits(definition, override).items() if v is not None})
    return validate_value(value, rules, definition.type)


def _rule_matches(rule: dict[str, Any], values: dict[str, Any]) -> bool:
    field_value = values.get(rule.get("field"))
    operator = rule.get("operator")
    expected = rule.get("value")

    if operator == "equals":
        return field_value == expected
    if operator == "notEquals":
        return field_value != expected
    if operator in ("greaterThan", "lessThan", "greaterThanOrEquals", "lessThanOrEquals"):
        if not (_is_number(field_value) and _is_number(expected)):
            return False
        if operator == "greaterThan":
            return field_value > expected
        if operator == "lessThan":
            return field_value < expected
        if operator == "greaterThanOrEquals":
            return field_value >= expected
        return field_value <= expected
    if operator == "contains":
        if isinstance(field_value, list):
            return expected in field_value
        if isinstance(field_value, str) and isinstance(expected, str):
            return expected in field_value
        return False
    if operator == "notContains":
        if isinstance(field_value, list):
            return expected not in field_value
        if isinstance(field_value, str) and isinstance(expected, str):
            return expected not in field_value
        return True
    if operator == "isEmpty":
        if field_value is None:
            return True
        if isinstance(field_value, str):
            return not field_value.strip()
        if isinstance(field_value, list):
            return not field_value
        return False
    if operator == "isNotEmpty":
        if field_value is None:
            return False
        if isinstance(field_value, str):
            return bool(field_value.strip())
        if isinstance(field_value, list):
            return bool(field_value)
        return True
    return True


def evaluate_condition(condition: dict[str, Any], values: dict[str, Any]) -> bool:
    if "all" in condition or "any" in condition:
        if condition.get("all"):
            return all(evaluate_condition(c, values) for c in condition["all"])
        if condition.get("any"):
            return any(evaluate_condition(c, values) for c in condition["any"])
        return True
    return _rule_matches(condition, values)


def evaluate_conditions(conditions: dict[str, Any] | None, values: dict[str, Any]) -> tuple[bool, bool]:
    """(visible, disabled) for one setting."""
    if not conditions:
        return True, False
    visible = evaluate_condition(conditions["show"], values) if conditions.get("show") else True
    disabled = evaluate_condition(conditions["disable"], values) if conditions.get("disable") else False
    return visible, disabled


def visible_settings(schema: SettingsSchema, values: dict[str, Any]) -> dict[str, tuple[bool, bool]]:
    return {key: evaluate_conditions(d.conditions, values) for key, d in schema.settings.items()}


def validate_all_settings(values: dict[str, Any], schema: SettingsSchema, *, visible_only: bool = False) -> ValidationResult:
    states = visible_settings(schema, values) if visible_only else {}
    result = ValidationResult()
    for key, definition in schema.settings.items():
        if visible_only and not states[key][0]:
            continue
        value = values.get(key)
        error = validate_value(value, definition.validation, definition.type)
        if error:
            result.errors.append(ValidationError(field=key, message=error, value=value))
    return result


def validate_visible_settings(values: dict[str, Any], schema: SettingsSchema) -> ValidationResult:
    return validate_all_settings(values, schema, visible_only=True)


def parse_setting_value(text: str, setting_type: str) -> Any:
    if setting_type == "boolean":
        return str(text).strip().lower() == "true"
    if setting_type == "number":
        try:
            number = float(text)
        except (TypeError, ValueError):
            return None
        if math.isnan(number):
            return None
        return int(number) if number.is_integer() else number
    if setting_type in MULTI_TYPES:
        return [part.strip() for part in str(text).split(",") if part.strip()]
    return text


def format_validation_errors(errors: list[ValidationError], schema: SettingsSchema) -> str:
    lines = []
    for err in errors:
        definition = schema.settings.get(err.field)
        label = definition.label if definition else err.field
        lines.append(f"- **{label}**: {err.message}")
    return "\n".join(lines)
