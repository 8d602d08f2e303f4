from __future__ import annotations

import json
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError

from libs.core import logging as core_logging
from libs.core.errors import UnparsableResponse

LOGGER = core_logging.get_logger("structured_response")

ModelT = TypeVar("ModelT", bound=BaseModel)

_OPENING_FENCE = re.compile(r"^```[\w-]*[ \t]*\n?")
_CLOSING_FENCE = re.compile(r"\n?```\s*$")
_OBJECT_SPAN = re.compile(r"\{.*\}", re.DOTALL)


class RepairStatus(str, Enum):
    ok = "ok"
    parse_error = "parse_error"
    shape_error = "shape_error"


class RepairStage(str, Enum):
    direct = "direct"
    object_span = "object_span"
    none = "none"


@dataclass(frozen=True)
class RepairResult(Generic[ModelT]):
    status: RepairStatus
    stage: RepairStage
    value: Optional[ModelT] = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return self.status == RepairStatus.ok


def strip_code_fence(text: str) -> str:
    cleaned = (text or "").strip()
    cleaned = _OPENING_FENCE.sub("", cleaned, count=1)
    cleaned = _CLOSING_FENCE.sub("", cleaned, count=1)
    return cleaned.strip()


def _parse(cleaned: str) -> tuple[Any, RepairStage, str]:
    try:
        return json.loads(cleaned), RepairStage.direct, ""
    except json.JSONDecodeError as exc:
        first_error = str(exc)
    match = _OBJECT_SPAN.search(cleaned)
    if match is None:
        return None, RepairStage.none, f"no JSON object found: {first_error}"
    try:
        return json.loads(match.group(0)), RepairStage.object_span, ""
    except json.JSONDecodeError as exc:
        return None, RepairStage.none, f"invalid JSON object: {exc}"


def repair_structured_response(raw_text: str, shape: Type[ModelT]) -> RepairResult[ModelT]:
    """Turn free-form model output into an instance of ``shape``.

    The text is parsed directly first; only when that fails is the span from the
    first ``{`` to the last ``}`` tried. A parsed value must be a JSON object
    that validates against ``shape``.
    """
    cleaned = strip_code_fence(raw_text)
    payload, stage, error = _parse(cleaned)
    if stage == RepairStage.none:
        LOGGER.warning(
            "structured_response_parse_error",
            shape=shape.__name__,
            raw_length=len(raw_text or ""),
            error=error,
        )
        return RepairResult(status=RepairStatus.parse_error, stage=stage, error=error)
    if not isinstance(payload, dict):
        error = f"expected a JSON object, got {type(payload).__name__}"
        LOGGER.warning("structured_response_shape_error", shape=shape.__name__, stage=stage.value, error=error)
        return RepairResult(status=RepairStatus.shape_error, stage=stage, error=error)
    try:
        value = shape.model_validate(payload)
    except ValidationError as exc:
        LOGGER.warning(
            "structured_response_shape_error",
            shape=shape.__name__,
            stage=stage.value,
            errors=exc.error_count(),
        )
        return RepairResult(status=RepairStatus.shape_error, stage=stage, error=str(exc))
    LOGGER.info("structured_response_repaired", shape=shape.__name__, stage=stage.value)
    return RepairResult(status=RepairStatus.ok, stage=stage, value=value)


def repair(raw_text: str, shape: Type[ModelT]) -> ModelT:
    result = repair_structured_response(raw_text, shape)
    if result.value is None:
        raise UnparsableResponse(
            f"{shape.__name__} response could not be repaired ({result.status.value}): {result.error}",
            stage=result.stage.value,
        )
    return result.value
