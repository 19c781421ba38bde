"""
Document schema - the intermediate shape threaded through config stages.

Two levels exist:

- raw: the document as assembled upstream. Definitions are keyed by
  unqualified names and may carry dependencies, input_relations and
  output_relation.
- qualified: after the qualification stage. Definition keys carry their
  kind prefix and every entry has dependencies_ and input_ lists, plus
  output_ (a one-element list) when it writes a relation.

check_document() is what the pipeline driver runs before and after every
stage. It only checks shape; resolvability and acyclicity belong to the
validation gate.
"""

from enum import Enum
from typing import Any

from ddcompile.errors import SchemaError

from .plan import DEPENDENCIES_FIELD, INPUT_FIELD, OUTPUT_FIELD, Kind


class DocumentLevel(str, Enum):
    """Schema level of a config document."""

    RAW = "raw"
    QUALIFIED = "qualified"


# (section, key, kind of the entries once qualified)
DEFINITION_SECTIONS = (
    ("extraction", "extractors", Kind.PROCESS),
    ("inference", "factors", Kind.FACTOR),
)
PROCESSES_SECTION = ("execution", "processes")


def get_section(document: dict[str, Any], section: str, key: str) -> Any:
    """Return document[section][key], or None when either level is missing."""
    outer = document.get(section)
    if not isinstance(outer, dict):
        return None
    return outer.get(key)


def _check_string_list(value: Any, path: str) -> None:
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise SchemaError("expected a list of names", path)


def _check_raw_entry(entry: dict[str, Any], path: str) -> None:
    # null reads as absent, like an empty YAML key
    for name in ("dependencies", "input_relations"):
        if entry.get(name) is not None:
            _check_string_list(entry[name], f"{path}.{name}")
    output = entry.get("output_relation")
    if output is not None and not isinstance(output, str):
        raise SchemaError("expected a relation name", f"{path}.output_relation")


def _check_qualified_entry(
    entry: dict[str, Any], path: str, require_fields: bool = True
) -> None:
    for name in (DEPENDENCIES_FIELD, INPUT_FIELD):
        if name not in entry:
            if not require_fields:
                continue
            raise SchemaError(f"missing '{name}'", path)
        _check_string_list(entry[name], f"{path}.{name}")
    for dep in entry.get(DEPENDENCIES_FIELD, []):
        if Kind.of(dep) is not Kind.PROCESS:
            raise SchemaError(f"unqualified dependency '{dep}'", path)
    for relation in entry.get(INPUT_FIELD, []):
        if Kind.of(relation) is not Kind.DATA:
            raise SchemaError(f"unqualified input relation '{relation}'", path)
    if OUTPUT_FIELD in entry:
        output = entry[OUTPUT_FIELD]
        if (
            not isinstance(output, list)
            or len(output) != 1
            or Kind.of(output[0]) is not Kind.DATA
        ):
            raise SchemaError(
                "expected a one-element list with a data/ name",
                f"{path}.{OUTPUT_FIELD}",
            )


def _check_mapping(value: Any, path: str, required: bool) -> dict[str, Any]:
    if value is None:
        if required:
            raise SchemaError("missing section", path)
        return {}
    if not isinstance(value, dict):
        raise SchemaError("expected a mapping", path)
    for name, entry in value.items():
        if not isinstance(entry, dict):
            raise SchemaError("expected a mapping", f"{path}.{name}")
    return value


def check_document(document: Any, level: DocumentLevel) -> None:
    """
    Check a document against a schema level.

    Args:
        document: The config document
        level: Level the document must satisfy

    Raises:
        SchemaError: With the dotted path of the first offending value
    """
    if not isinstance(document, dict):
        raise SchemaError("document must be a mapping")

    qualified = level is DocumentLevel.QUALIFIED

    for section, key, kind in DEFINITION_SECTIONS:
        path = f"{section}.{key}"
        entries = _check_mapping(
            get_section(document, section, key), path, required=qualified
        )
        for name, entry in entries.items():
            entry_path = f"{path}.{name}"
            if qualified:
                if Kind.of(name) is not kind:
                    raise SchemaError(f"expected a {kind.prefix} name", entry_path)
                _check_qualified_entry(entry, entry_path)
            else:
                _check_raw_entry(entry, entry_path)

    section, key = PROCESSES_SECTION
    processes = _check_mapping(
        get_section(document, section, key), f"{section}.{key}", required=qualified
    )
    if qualified:
        for name, entry in processes.items():
            entry_path = f"{section}.{key}.{name}"
            if Kind.of(name) not in (Kind.PROCESS, Kind.FACTOR):
                raise SchemaError("expected a qualified process name", entry_path)
            _check_qualified_entry(entry, entry_path, require_fields=False)
