from __future__ import annotations

from typing import Annotated, Any, Dict, Literal, Optional, Tuple, Type, TypeVar

from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from cgpatrack.core.errors import ValidationError
from cgpatrack.core.grades import CREDIT_OPTIONS, TERMS

Term = Literal[TERMS]

ModelT = TypeVar("ModelT", bound=BaseModel)


def _check_credit_step(value: float) -> float:
    if value not in CREDIT_OPTIONS:
        raise ValueError("Credits must be in increments of 0.5")
    return value


Credits = Annotated[float, Field(ge=0.5, le=10), AfterValidator(_check_credit_step)]


class _Payload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")


class SemesterPayload(_Payload):
    name: str = Field(min_length=1, max_length=100)
    year: int = Field(ge=2000, le=2100)
    term: Optional[Term] = None


class SemesterUpdatePayload(_Payload):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    year: Optional[int] = Field(default=None, ge=2000, le=2100)
    term: Optional[Term] = None


class SubjectPayload(_Payload):
    name: str = Field(min_length=1, max_length=100)
    grade: str = Field(min_length=1)
    credits: Credits


class SubjectUpdatePayload(_Payload):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    grade: Optional[str] = Field(default=None, min_length=1)
    credits: Optional[Credits] = None


class GradePayload(_Payload):
    name: str = Field(min_length=1, max_length=10)
    points: float = Field(ge=0, le=10)
    description: Optional[str] = Field(default=None, max_length=100)
    min_percentage: Optional[float] = Field(default=None, ge=0, le=100)
    max_percentage: Optional[float] = Field(default=None, ge=0, le=100)


class GradeUpdatePayload(_Payload):
    name: Optional[str] = Field(default=None, min_length=1, max_length=10)
    points: Optional[float] = Field(default=None, ge=0, le=10)
    description: Optional[str] = Field(default=None, max_length=100)
    min_percentage: Optional[float] = Field(default=None, ge=0, le=100)
    max_percentage: Optional[float] = Field(default=None, ge=0, le=100)


def validate(model: Type[ModelT], data: Dict[str, Any]) -> ModelT:
    """Parse ``data`` into ``model``, raising our ValidationError with a readable message."""
    try:
        return model.model_validate(data)
    except PydanticValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()))
        message = str(first.get("msg", "Invalid value"))
        raise ValidationError(f"{location}: {message}" if location else message) from exc


def changed_fields(payload: BaseModel, nullable: Tuple[str, ...] = ()) -> Dict[str, Any]:
    """Fields the caller supplied. An explicit null only counts for ``nullable`` fields."""
    return {
        key: value
        for key, value in payload.model_dump(exclude_unset=True).items()
        if value is not None or key in nullable
    }
