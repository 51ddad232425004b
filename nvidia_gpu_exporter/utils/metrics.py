"""Metric naming and per-field metric metadata."""

from dataclasses import dataclass
import logging
import re
from typing import Dict, Mapping, Optional, Tuple


GAUGE = "gauge"

# Returned field unit suffix -> (metric name suffix, value multiplier)
UNIT_SUFFIXES = (
    (" [W]", "_watts", 1.0),
    (" [MHz]", "_clock_hz", 1000000.0),
    (" [MiB]", "_bytes", 1048576.0),
    (" [%]", "_ratio", 0.01),
    (" [us]", "_seconds", 0.000001),
)

_FIRST_CAP = re.compile(r'(.)([A-Z][a-z]+)')
_ALL_CAP = re.compile(r'([a-z0-9])([A-Z])')


@dataclass(frozen=True)
class MetricInfo:
    """Cached naming and scaling for one query field."""

    name: str
    documentation: str
    metric_type: str = GAUGE
    multiplier: float = 1.0


def to_snake_case(value: str) -> str:
    """Convert camelCase / PascalCase identifiers to snake_case."""
    snake = _FIRST_CAP.sub(r'\1_\2', value)
    snake = _ALL_CAP.sub(r'\1_\2', snake)
    return snake.lower()


def build_fq_name(prefix: str, name: str) -> str:
    return f"{prefix}_{name}" if prefix else name


def build_fq_name_and_multiplier(
    prefix: str,
    returned_field: str,
    logger: Optional[logging.Logger] = None
) -> Tuple[str, float]:
    """
    Derive the metric name and value multiplier from a returned field.

    Args:
        prefix: Metric name prefix (may be empty)
        returned_field: Column header as printed by nvidia-smi
        logger: Logger for names that needed best-effort cleanup

    Returns:
        Tuple[str, float]: Fully qualified metric name and multiplier

    Example:
        >>> build_fq_name_and_multiplier("prefix", "memory.total [MiB]")
        ('prefix_memory_total_bytes', 1048576.0)
    """
    logger = logger or logging.getLogger(__name__)

    name = returned_field
    multiplier = 1.0
    base = returned_field.split(" ")[0]

    for unit, name_suffix, unit_multiplier in UNIT_SUFFIXES:
        if returned_field.endswith(unit):
            name = base + name_suffix
            multiplier = unit_multiplier
            break

    name = to_snake_case(name.replace(".", "_"))

    if any(ch in name for ch in " []"):
        name = name.replace(" [", "_").replace("]", "")
        logger.warning(
            f"Returned field {returned_field!r} contains unexpected characters, "
            f"parsed with best effort as {name!r}",
            extra={"returned_field": returned_field, "parsed_name": name}
        )

    return build_fq_name(prefix, name), multiplier


def build_metric_info(
    prefix: str,
    returned_field: str,
    logger: Optional[logging.Logger] = None
) -> MetricInfo:
    """Build MetricInfo for a single returned field."""
    name, multiplier = build_fq_name_and_multiplier(prefix, returned_field, logger)
    return MetricInfo(
        name=name,
        documentation=returned_field,
        metric_type=GAUGE,
        multiplier=multiplier
    )


def build_metric_infos(
    prefix: str,
    returned_fields: Mapping[str, str],
    logger: Optional[logging.Logger] = None
) -> Dict[str, MetricInfo]:
    """Build MetricInfo for every query field in a query -> returned field mapping."""
    return {
        query_field: build_metric_info(prefix, returned_field, logger)
        for query_field, returned_field in returned_fields.items()
    }
