"""
Qualifier - Namespace entity names and merge extractors into the plan.

The qualifier rewrites a raw config document:
- extraction.extractors keys become process/<name>
- inference.factors keys become factor/<name>
- every entry gains dependencies_ (process/ names), input_ (data/ names)
  and, only when it writes a relation, output_ (a one-element list)
- qualified extractors are merged into execution.processes

Qualification is idempotent: an already-qualified name is left unchanged.
Referenced names do not need to be defined anywhere; whether they resolve
is for the validation gate to decide.

Merging is additive. A key that already exists in execution.processes, or
two definitions that qualify to the same name, is recorded under
execution.collisions_ instead of being silently dropped.
"""

import copy
from typing import Any

from ddcompile.schemas import DEPENDENCIES_FIELD, INPUT_FIELD, OUTPUT_FIELD, Kind


COLLISIONS_FIELD = "collisions_"


def qualify_name(kind: Kind, name: str) -> str:
    """
    Qualify a single name with its kind.

    Args:
        kind: Namespace of the name
        name: Unqualified (or already qualified) name

    Returns:
        "<kind>/<name>"
    """
    if name.startswith(kind.prefix):
        return name
    return kind.prefix + name


def qualify_entry(entry: dict[str, Any]) -> dict[str, Any]:
    """
    Add the qualified dependency and relation fields to one definition.

    The original fields are kept. output_ is only added when the entry
    has an output_relation; "no output" is never an empty list.

    Args:
        entry: An extractor or factor definition

    Returns:
        A new dict with dependencies_, input_ and (maybe) output_
    """
    result = copy.deepcopy(entry)
    result[DEPENDENCIES_FIELD] = [
        qualify_name(Kind.PROCESS, dep) for dep in entry.get("dependencies") or []
    ]
    result[INPUT_FIELD] = [
        qualify_name(Kind.DATA, rel) for rel in entry.get("input_relations") or []
    ]
    output = entry.get("output_relation")
    if output is not None:
        result[OUTPUT_FIELD] = [qualify_name(Kind.DATA, output)]
    else:
        result.pop(OUTPUT_FIELD, None)
    return result


def qualify_entries(
    entries: dict[str, Any], kind: Kind
) -> tuple[dict[str, Any], list[str]]:
    """
    Qualify the keys and entries of one definition mapping.

    Two source keys can qualify to the same name ("x" and "process/x").
    The later one wins and the shared name is reported as a collision.

    Returns:
        (qualified mapping, sorted qualified names defined more than once)
    """
    qualified = {}
    collisions = set()
    for name, entry in entries.items():
        key = qualify_name(kind, name)
        if key in qualified:
            collisions.add(key)
        qualified[key] = qualify_entry(entry)
    return qualified, sorted(collisions)


def merge_processes(
    processes: dict[str, Any],
    entries: dict[str, Any],
) -> tuple[dict[str, Any], list[str]]:
    """
    Merge qualified entries into the execution-plan mapping.

    Args:
        processes: Existing execution.processes mapping
        entries: Qualified entries to add

    Returns:
        (merged mapping, sorted names that were already present)
    """
    merged = dict(processes)
    collisions = []
    for name, entry in entries.items():
        if name in merged:
            collisions.append(name)
        merged[name] = entry
    return merged, sorted(collisions)


def record_collisions(document: dict[str, Any], collisions: list[str]) -> None:
    """Append merge collisions to execution.collisions_ of a document."""
    if not collisions:
        return
    execution = document.setdefault("execution", {})
    existing = execution.get(COLLISIONS_FIELD, [])
    execution[COLLISIONS_FIELD] = sorted(set(existing) | set(collisions))


def qualify_document(document: dict[str, Any]) -> dict[str, Any]:
    """
    Qualify a whole config document.

    The input document is not modified.

    Args:
        document: Raw config document

    Returns:
        The qualified document with extractors merged into
        execution.processes
    """
    result = copy.deepcopy(document)

    extraction = result.setdefault("extraction", {})
    extractors, duplicates = qualify_entries(
        extraction.get("extractors") or {}, Kind.PROCESS
    )
    extraction["extractors"] = extractors
    record_collisions(result, duplicates)

    inference = result.setdefault("inference", {})
    factors, duplicates = qualify_entries(inference.get("factors") or {}, Kind.FACTOR)
    inference["factors"] = factors
    record_collisions(result, duplicates)

    execution = result.setdefault("execution", {})
    merged, collisions = merge_processes(
        execution.get("processes") or {}, copy.deepcopy(extractors)
    )
    execution["processes"] = merged
    record_collisions(result, collisions)

    return result
