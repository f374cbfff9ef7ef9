"""
Configuration validation run once at startup.

- Range checks for ladder and exit parameters
- Dependency validation (e.g., agent_key requires user_address)
- Warnings for risky configurations

Settings.ladder_params() repeats the required-parameter check at placement
time; this module only reports, it never mutates the settings.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)


class ValidationSeverity(Enum):
    """Severity levels for validation issues."""
    ERROR = auto()    # Blocks startup
    WARNING = auto()  # Logs warning but allows startup
    INFO = auto()     # Informational only


@dataclass
class ValidationIssue:
    """A single validation issue."""
    field: str
    message: str
    severity: ValidationSeverity
    value: Any = None
    suggestion: Optional[str] = None


@dataclass
class ValidationResult:
    """Result of config validation."""
    valid: bool
    issues: List[ValidationIssue] = field(default_factory=list)

    def has_errors(self) -> bool:
        return any(i.severity == ValidationSeverity.ERROR for i in self.issues)

    def has_warnings(self) -> bool:
        return any(i.severity == ValidationSeverity.WARNING for i in self.issues)

    def get_errors(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == ValidationSeverity.ERROR]

    def get_warnings(self) -> List[ValidationIssue]:
        return [i for i in self.issues if i.severity == ValidationSeverity.WARNING]


class ConfigValidator:
    """
    Validates Settings for a ladder cycle.

    Checks:
    - Required fields are present
    - Numeric values are within safe ranges
    - Dependencies between fields
    - Risky configurations
    """

    # Range definitions: (min, max, default_if_missing)
    NUMERIC_RANGES: Dict[str, Tuple[float, float, Optional[float]]] = {
        "total_amount": (1.0, 10_000_000.0, None),
        "max_drop_pct": (0.01, 90.0, None),
        "order_count": (1, 100, None),
        "increment_pct": (0.0, 500.0, None),
        "min_order_amount": (0.0, 100_000.0, 10.0),
        "take_profit_pct": (0.01, 100.0, 0.5),
        "sell_offset_pct": (0.0, 10.0, 0.05),
        "second_sell_offset_pct": (0.0, 20.0, 0.3),
        "monitor_interval_sec": (1.0, 3600.0, 15.0),
        "price_poll_interval_sec": (0.5, 600.0, 5.0),
        "no_fill_restart_min": (1.0, 10_080.0, 60.0),
        "ws_stale_after": (5.0, 300.0, 30.0),
        "http_timeout": (1.0, 120.0, 5.0),
    }

    # Required string fields
    REQUIRED_STRINGS: List[str] = [
        "base_url",
        "trading_coin",
        "quote_asset",
    ]

    # Conditional requirements
    CONDITIONAL_REQUIREMENTS: List[Tuple[str, str, str]] = [
        # (if_field, then_required, message)
        ("agent_key", "user_address", "agent_key requires user_address to be set"),
    ]

    def __init__(self) -> None:
        self._custom_validators: List[Callable[[Any], List[ValidationIssue]]] = []

    def register_validator(self, validator: Callable[[Any], List[ValidationIssue]]) -> None:
        """Register a custom validation function."""
        self._custom_validators.append(validator)

    def validate(self, cfg) -> ValidationResult:
        """
        Validate a Settings object.

        Args:
            cfg: Settings instance to validate

        Returns:
            ValidationResult with all issues found
        """
        issues: List[ValidationIssue] = []
        issues.extend(self._validate_required_strings(cfg))
        issues.extend(self._validate_numeric_ranges(cfg))
        issues.extend(self._validate_conditional(cfg))
        issues.extend(self._check_risky_configs(cfg))

        for validator in self._custom_validators:
            try:
                custom_issues = validator(cfg)
                if custom_issues:
                    issues.extend(custom_issues)
            except Exception as e:
                logger.warning(f"Custom validator error: {e}")

        has_errors = any(i.severity == ValidationSeverity.ERROR for i in issues)
        return ValidationResult(valid=not has_errors, issues=issues)

    def _validate_required_strings(self, cfg) -> List[ValidationIssue]:
        issues = []
        for field_name in self.REQUIRED_STRINGS:
            value = getattr(cfg, field_name, None)
            if not value or (isinstance(value, str) and not value.strip()):
                issues.append(ValidationIssue(
                    field=field_name,
                    message=f"Required field '{field_name}' is missing or empty",
                    severity=ValidationSeverity.ERROR,
                    value=value,
                ))
        return issues

    def _validate_numeric_ranges(self, cfg) -> List[ValidationIssue]:
        """Validate numeric fields are within acceptable ranges."""
        issues = []
        for field_name, (min_val, max_val, default) in self.NUMERIC_RANGES.items():
            value = getattr(cfg, field_name, None)
            if value is None:
                if default is None:
                    issues.append(ValidationIssue(
                        field=field_name,
                        message=f"Required numeric field '{field_name}' is missing",
                        severity=ValidationSeverity.ERROR,
                        suggestion=f"Set HL_{field_name.upper()}",
                    ))
                continue

            try:
                num_value = float(value)
            except (TypeError, ValueError):
                issues.append(ValidationIssue(
                    field=field_name,
                    message=f"'{field_name}' has invalid numeric value: {value}",
                    severity=ValidationSeverity.ERROR,
                    value=value,
                ))
                continue
            if num_value < min_val:
                issues.append(ValidationIssue(
                    field=field_name,
                    message=f"'{field_name}' value {num_value} is below minimum {min_val}",
                    severity=ValidationSeverity.ERROR,
                    value=num_value,
                    suggestion=f"Set to at least {min_val}",
                ))
            elif num_value > max_val:
                issues.append(ValidationIssue(
                    field=field_name,
                    message=f"'{field_name}' value {num_value} is above maximum {max_val}",
                    severity=ValidationSeverity.ERROR,
                    value=num_value,
                    suggestion=f"Set to at most {max_val}",
                ))
        return issues

    def _validate_conditional(self, cfg) -> List[ValidationIssue]:
        issues = []
        for if_field, then_required, message in self.CONDITIONAL_REQUIREMENTS:
            if_value = getattr(cfg, if_field, None)
            then_value = getattr(cfg, then_required, None)
            if if_value and not then_value:
                issues.append(ValidationIssue(
                    field=then_required,
                    message=message,
                    severity=ValidationSeverity.ERROR,
                    suggestion=f"Set '{then_required}' when using '{if_field}'",
                ))
        return issues

    def _check_risky_configs(self, cfg) -> List[ValidationIssue]:
        """Check for risky but valid configurations."""
        issues = []

        # Ladder legs below the exchange minimum get merged, so the budget
        # should cover at least one minimum-sized order per leg.
        total = getattr(cfg, "total_amount", None) or 0.0
        count = getattr(cfg, "order_count", None) or 0
        min_amount = getattr(cfg, "min_order_amount", 0.0) or 0.0
        if total and count and min_amount and total / count < min_amount:
            issues.append(ValidationIssue(
                field="order_count",
                message=(
                    f"Budget {total} over {count} orders is below the minimum order "
                    f"amount {min_amount}; small legs will be merged"
                ),
                severity=ValidationSeverity.WARNING,
                value=count,
                suggestion="Lower HL_ORDER_COUNT or raise HL_TOTAL_AMOUNT",
            ))

        sell_offset = getattr(cfg, "sell_offset_pct", 0.05)
        second_offset = getattr(cfg, "second_sell_offset_pct", 0.3)
        if second_offset <= sell_offset:
            issues.append(ValidationIssue(
                field="second_sell_offset_pct",
                message="Retry sell offset is not larger than the primary offset",
                severity=ValidationSeverity.WARNING,
                value=second_offset,
                suggestion="Set HL_SECOND_SELL_OFFSET_PCT above HL_SELL_OFFSET_PCT",
            ))

        take_profit = getattr(cfg, "take_profit_pct", 0.5)
        if take_profit < 0.1:
            issues.append(ValidationIssue(
                field="take_profit_pct",
                message=f"Take-profit of {take_profit}% may not cover trading fees",
                severity=ValidationSeverity.WARNING,
                value=take_profit,
            ))

        if not getattr(cfg, "auto_restart_no_fill", True):
            issues.append(ValidationIssue(
                field="auto_restart_no_fill",
                message="No-fill auto-restart disabled; an unfilled ladder will wait indefinitely",
                severity=ValidationSeverity.INFO,
            ))

        agent_key = getattr(cfg, "agent_key", None)
        private_key = getattr(cfg, "private_key", None)
        if not agent_key and not private_key:
            issues.append(ValidationIssue(
                field="agent_key",
                message="No authentication configured (agent_key or private_key)",
                severity=ValidationSeverity.ERROR,
                suggestion="Set HL_AGENT_KEY or HL_PRIVATE_KEY",
            ))

        if total > 50000:
            issues.append(ValidationIssue(
                field="total_amount",
                message=f"Large budget (${total:,.0f}) - ensure this is intended",
                severity=ValidationSeverity.WARNING,
                value=total,
            ))

        return issues


def validate_config(cfg) -> ValidationResult:
    return ConfigValidator().validate(cfg)


def validate_and_log(cfg, logger_instance=None) -> bool:
    """
    Validate config and log all issues.

    Returns:
        True if config is valid (no errors), False otherwise
    """
    log = logger_instance or logger
    result = validate_config(cfg)

    for issue in result.get_errors():
        msg = f"CONFIG ERROR: {issue.message}"
        if issue.suggestion:
            msg += f" (suggestion: {issue.suggestion})"
        log.error(msg)

    for issue in result.get_warnings():
        msg = f"CONFIG WARNING: {issue.message}"
        if issue.suggestion:
            msg += f" (suggestion: {issue.suggestion})"
        log.warning(msg)

    if result.valid:
        log.info("Configuration validation passed")
    else:
        log.error(f"Configuration validation failed with {len(result.get_errors())} error(s)")

    return result.valid
