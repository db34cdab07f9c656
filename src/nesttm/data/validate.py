from pathlib import Path
from typing import Any, List, Union

from jsonschema import Draft202012Validator, SchemaError
from pydantic import ValidationError

from nesttm.logs import get_logger
from nesttm.models import ListCollection
from nesttm.recovery import CorruptionError, FatalError, FileOperationError
from nesttm.tree.invariants import check_forest
from .io import load_yaml_file

log = get_logger("data.validate")

def collection_schema() -> dict:
    """JSON schema of the lists file, generated from the ListCollection model."""
    schema = ListCollection.model_json_schema()
    schema["$schema"] = "https://json-schema.org/draft/2020-12/schema"
    return schema

def validate_collection_data(data: Any) -> List[str]:
    """
    Validate raw lists data against the ListCollection schema.

    Args:
        data: The mapping loaded from a lists file

    Returns:
        A list of error messages; empty when the data is valid
    """
    try:
        validator = Draft202012Validator(collection_schema())
    except SchemaError as e:
        raise FatalError(f"The lists schema itself is invalid: {e.message}") from e

    errors = []
    for error in sorted(validator.iter_errors(data), key=lambda e: list(e.path)):
        location = "/".join(str(p) for p in error.path) or "<root>"
        errors.append(f"{location}: {error.message}")
    return errors

def validate_file(file_path: Union[Path, str]) -> List[str]:
    """
    Validate a lists file: schema first, then the invariants of every forest.

    Returns:
        A list of problems; empty when the file is valid
    """
    file_path = Path(file_path)
    if not file_path.exists():
        log.error(f"File not found: {file_path}")
        return [f"File not found: {file_path}"]

    try:
        data = load_yaml_file(file_path)
    except (CorruptionError, FileOperationError) as e:
        log.error(f"Validation failed: could not load '{file_path}': {e}")
        return [str(e)]

    problems = validate_collection_data(data)
    if problems:
        log.error(f"File '{file_path}' FAILED schema validation")
        for problem in problems:
            log.error(f"Validation Error: {problem}")
        return problems

    try:
        collection = ListCollection.model_validate(data)
    except ValidationError as e:
        log.error(f"File '{file_path}' FAILED model validation: {e}")
        return [err["msg"] for err in e.errors()]

    for task_list in collection.lists:
        problems.extend(f"{task_list.id}: {p}" for p in check_forest(task_list))

    if problems:
        log.error(f"File '{file_path}' has {len(problems)} invariant problem(s)")
    else:
        log.info(f"File '{file_path}' is VALID")
    return problems
