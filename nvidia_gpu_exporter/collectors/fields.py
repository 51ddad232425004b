"""Query field resolution: which fields to ask nvidia-smi for, and what it calls them."""

from dataclasses import dataclass, field
from enum import Enum
import logging
import re
from types import MappingProxyType
from typing import Iterable, List, Mapping, NamedTuple, Optional, Tuple

from ..utils.table import parse_csv_into_table
from .catalog import FALLBACK_RETURNED_FIELDS, fallback_returned_fields
from .command import CommandError, NvidiaSmi


AUTO_DETECT = "AUTO"
DEFAULT_QUERY_FIELDS = AUTO_DETECT

# Field names in `nvidia-smi --help-query-gpu` are quoted at the start of a
# line following a blank line
FIELD_PATTERN = re.compile(r'(?m)\n\s*\n^"([^"]+)"')


class RequiredField(NamedTuple):
    query_field: str
    label: str


UUID = "uuid"
NAME = "name"
DRIVER_MODEL_CURRENT = "driver_model.current"
DRIVER_MODEL_PENDING = "driver_model.pending"
VBIOS_VERSION = "vbios_version"
DRIVER_VERSION = "driver_version"

REQUIRED_FIELDS: Tuple[RequiredField, ...] = (
    RequiredField(UUID, "uuid"),
    RequiredField(NAME, "name"),
    RequiredField(DRIVER_MODEL_CURRENT, "driver_model_current"),
    RequiredField(DRIVER_MODEL_PENDING, "driver_model_pending"),
    RequiredField(VBIOS_VERSION, "vbios_version"),
    RequiredField(DRIVER_VERSION, "driver_version"),
)


class NoQueryFieldsError(ValueError):
    """Raised when no field names could be extracted from the help text."""


class FieldSpecKind(Enum):
    EXPLICIT = "explicit"
    AUTO_DETECT = "auto_detect"


@dataclass(frozen=True)
class FieldSpec:
    """Requested query fields: an explicit list or auto-detection."""

    kind: FieldSpecKind
    fields: Tuple[str, ...] = ()

    @classmethod
    def parse(cls, raw: str) -> "FieldSpec":
        """
        Parse a comma-separated field list.

        Args:
            raw: Comma-separated query fields, or AUTO

        Returns:
            FieldSpec: Parsed specification

        Raises:
            ValueError: If the list contains an empty field name
        """
        if raw == AUTO_DETECT:
            return cls(kind=FieldSpecKind.AUTO_DETECT)

        fields = tuple(part.strip() for part in raw.split(","))
        if not all(fields):
            raise ValueError(f"Malformed query field list: {raw!r}")

        return cls(kind=FieldSpecKind.EXPLICIT, fields=fields)

    @property
    def is_auto(self) -> bool:
        return self.kind is FieldSpecKind.AUTO_DETECT


@dataclass(frozen=True)
class FieldMapping:
    """Immutable snapshot of resolved query fields and their returned fields."""

    query_fields: Tuple[str, ...]
    returned_fields: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_lists(cls, query_fields: Iterable[str], returned_fields: Iterable[str]) -> "FieldMapping":
        query_fields = tuple(query_fields)
        return cls(
            query_fields=query_fields,
            returned_fields=MappingProxyType(dict(zip(query_fields, returned_fields)))
        )


def remove_duplicates(values: Iterable[str]) -> List[str]:
    """Drop repeated values, keeping the first occurrence order."""
    return list(dict.fromkeys(values))


def with_required_fields(query_fields: Iterable[str]) -> List[str]:
    """Append required identity fields and deduplicate."""
    return remove_duplicates(list(query_fields) + [f.query_field for f in REQUIRED_FIELDS])


def extract_query_fields(text: str) -> List[str]:
    """
    Extract query field names from `nvidia-smi --help-query-gpu` output.

    Example help text:
        List of valid properties to query for the switch "--query-gpu=":

        "timestamp"
        The timestamp of when the query was made ...
    """
    return FIELD_PATTERN.findall(text)


def parse_auto_query_fields(nvidia_smi: NvidiaSmi) -> List[str]:
    """
    Ask nvidia-smi for every query field it supports.

    Raises:
        CommandError: If nvidia-smi fails
        NoQueryFieldsError: If the help output contains no field names
    """
    result = nvidia_smi.help_query_gpu()
    fields = extract_query_fields(result.stdout)
    if not fields:
        raise NoQueryFieldsError(
            f"could not extract any query fields: command: {' '.join(result.command)} "
            f"| stdout: {result.stdout} | stderr: {result.stderr}"
        )
    return fields


def fallback_mapping() -> FieldMapping:
    """Mapping for every field in the built-in catalog."""
    return FieldMapping.from_lists(FALLBACK_RETURNED_FIELDS.keys(), FALLBACK_RETURNED_FIELDS.values())


def resolve_fields(
    spec: FieldSpec,
    nvidia_smi: NvidiaSmi,
    logger: Optional[logging.Logger] = None
) -> FieldMapping:
    """
    Determine the query fields to use and the returned field for each.

    Auto-detection falls back to the whole built-in catalog when nvidia-smi
    cannot describe its fields. Otherwise a trial scrape is run to learn the
    returned fields (with their units); if that fails the catalog is used.

    Args:
        spec: Requested fields or auto-detection
        nvidia_smi: nvidia-smi wrapper used for discovery and the trial scrape
        logger: Logger instance

    Returns:
        FieldMapping: Resolved query fields and returned fields

    Raises:
        UnexpectedQueryFieldError: If the trial scrape failed and a field
            is not in the built-in catalog
    """
    logger = logger or logging.getLogger(__name__)

    query_fields = with_required_fields(spec.fields)

    if spec.is_auto:
        try:
            query_fields = with_required_fields(parse_auto_query_fields(nvidia_smi))
        except (CommandError, NoQueryFieldsError) as e:
            logger.warning(
                f"Failed to auto-detect query fields, falling back to the built-in list: {e}"
            )
            return fallback_mapping()

        logger.info(f"Auto-detected {len(query_fields)} query fields")

    try:
        result = nvidia_smi.query(query_fields)
        table = parse_csv_into_table(result.stdout, query_fields)
        returned_fields = list(table.returned_fields)
    except (CommandError, ValueError) as e:
        logger.warning(
            f"Failed to run the initial scrape, using the built-in list for field mapping: {e}"
        )
        returned_fields = fallback_returned_fields(query_fields)

    return FieldMapping.from_lists(query_fields, returned_fields)
