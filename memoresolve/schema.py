from typing import Any, Dict, List

from .errors import PlanValidationError
from .models import OperationStep

REQUIRED_STR_FIELDS = ["id", "capability", "action"]


def _is_non_empty_str(v: Any) -> bool:
    return isinstance(v, str) and v.strip() != ""


def validate_step(step: Any, index: int, seen_ids: List[str]) -> List[str]:
    errors: List[str] = []
    where = f"Step {index}"

    if not isinstance(step, dict):
        return [f"{where} must be an object"]

    for f in REQUIRED_STR_FIELDS:
        if f not in step:
            errors.append(f"{where}: missing required field: {f}")
        elif not _is_non_empty_str(step[f]):
            errors.append(f"{where}: field '{f}' must be a non-empty string")

    step_id = step.get("id")
    if _is_non_empty_str(step_id):
        where = f"Step '{step_id}'"
        if step_id in seen_ids:
            errors.append(f"{where}: duplicate step id")

    if "arguments" in step and step["arguments"] is not None and not isinstance(step["arguments"], dict):
        errors.append(f"{where}: field 'arguments' must be an object if provided")

    depends_on = step.get("depends_on", [])
    if depends_on is None:
        depends_on = []
    if not isinstance(depends_on, list):
        errors.append(f"{where}: field 'depends_on' must be a list if provided")
    else:
        for dep in depends_on:
            if dep not in seen_ids:
                errors.append(f"{where}: depends_on '{dep}' does not name an earlier step")

    return errors


def validate_plan(data: Any) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.
    Steps may only depend on steps listed before them.
    """
    if isinstance(data, dict) and "steps" in data:
        data = data["steps"]
    if not isinstance(data, list):
        return ["Plan must be a list of steps"]
    if not data:
        return ["Plan must contain at least one step"]

    errors: List[str] = []
    seen_ids: List[str] = []
    for index, step in enumerate(data):
        errors.extend(validate_step(step, index, seen_ids))
        if isinstance(step, dict) and _is_non_empty_str(step.get("id")):
            seen_ids.append(step["id"])
    return errors


def parse_plan(data: Any) -> List[OperationStep]:
    """
    Validate and convert a planner plan into OperationSteps.

    Accepts either a bare list of steps or ``{"steps": [...]}``. Keys
    ``dependsOn`` and ``args`` are accepted as spellings of ``depends_on``
    and ``arguments``.

    Raises:
        PlanValidationError: If the plan does not validate
    """
    if isinstance(data, dict) and "steps" in data:
        data = data["steps"]
    if isinstance(data, list):
        data = [_canonical_keys(step) if isinstance(step, dict) else step for step in data]

    errors = validate_plan(data)
    if errors:
        raise PlanValidationError(errors)
    return [OperationStep.from_dict(step) for step in data]


def _canonical_keys(step: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(step)
    if "dependsOn" in out and "depends_on" not in out:
        out["depends_on"] = out.pop("dependsOn")
    if "args" in out and "arguments" not in out:
        out["arguments"] = out.pop("args")
    return out
