"""Declarative request schemas and the exhaustive validator behind ValidatorGuard.

Schemas are pydantic models so they can be built in code or parsed from
JSON configuration::

    RequestSchema(
        body=SectionSchema(
            properties={
                "email": FieldRule(type="string", required=True, format="email",
                                   transforms=["trim", "lower"]),
                "tags": FieldRule(type="array", items=FieldRule(type="string")),
            },
            reject_unknown=True,
        ),
        query=SectionSchema(properties={"page": FieldRule(type="integer", default=1)}),
    )

Each section is compiled once into a pydantic model (``create_model``) and
validated with it.  Pydantic collects every error, so validation never
stops at the first problem; each error becomes a :class:`Violation` with
its accumulated path (``body.tags[2]``).

The body is validated strictly.  Query, params and headers arrive as
strings and are validated in lax mode, so ``"3"`` becomes ``3`` for an
integer field.
"""

from __future__ import annotations

import copy
import functools
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING, Annotated, Any, Literal
from uuid import UUID

from pydantic import (
    AfterValidator,
    AnyHttpUrl,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    EmailStr,
    Field,
    PrivateAttr,
    StrictBool,
    StrictFloat,
    StrictInt,
    StrictStr,
    TypeAdapter,
    ValidationError,
    create_model,
    field_validator,
)
from pydantic_core import PydanticCustomError

if TYPE_CHECKING:
    from guard_chain.context import RequestContext

FieldType = Literal["string", "integer", "number", "boolean", "array", "object", "any"]
Format = Literal["email", "uuid", "url", "date-time", "date"]
Transform = Literal["trim", "lower", "upper"]

SECTION_NAMES = ("body", "query", "params", "headers")

_FORMAT_TYPES: dict[str, Any] = {
    "email": EmailStr,
    "uuid": UUID,
    "url": AnyHttpUrl,
    "date-time": datetime,
    "date": date,
}

_TRANSFORMS: dict[str, Callable[[str], str]] = {
    "trim": str.strip,
    "lower": str.lower,
    "upper": str.upper,
}

# pydantic error type -> reported constraint; anything else is a type mismatch
_CONSTRAINTS = {
    "missing": "required",
    "extra_forbidden": "unknown",
    "greater_than_equal": "minimum",
    "less_than_equal": "maximum",
    "string_too_short": "min_length",
    "too_short": "min_length",
    "string_too_long": "max_length",
    "too_long": "max_length",
    "string_pattern_mismatch": "pattern",
    "literal_error": "enum",
    "enum": "enum",
    "format": "format",
}


class FieldRule(BaseModel):
    """Constraints for a single field.

    ``min_length`` / ``max_length`` apply to string length and to the
    number of array items.  ``default`` is substituted when an optional
    field is absent; set it explicitly (even to ``None``) to enable that.
    """

    type: FieldType = "any"
    required: bool = False
    default: Any = None
    minimum: float | None = None
    maximum: float | None = None
    min_length: int | None = None
    max_length: int | None = None
    pattern: str | None = None
    format: Format | None = None
    enum: list[Any] | None = None
    items: FieldRule | None = None
    properties: dict[str, FieldRule] | None = None
    reject_unknown: bool = False
    transforms: list[Transform] = Field(default_factory=list)

    @field_validator("pattern")
    @classmethod
    def _pattern_compiles(cls, value: str | None) -> str | None:
        if value is not None:
            try:
                re.compile(value)
            except re.error as exc:
                raise ValueError(f"invalid pattern {value!r}: {exc}") from exc
        return value

    @property
    def has_default(self) -> bool:
        return "default" in self.model_fields_set


class SectionSchema(BaseModel):
    """Field rules for one payload section (body, query, params or headers)."""

    properties: dict[str, FieldRule] = Field(default_factory=dict)
    reject_unknown: bool = False


class RequestSchema(BaseModel):
    """Per-section schemas.  Sections left as ``None`` are not validated."""

    body: SectionSchema | None = None
    query: SectionSchema | None = None
    params: SectionSchema | None = None
    headers: SectionSchema | None = None

    _compiled: dict[str, Any] | None = PrivateAttr(default=None)

    def sections(self) -> list[tuple[str, SectionSchema]]:
        pairs = [(name, getattr(self, name)) for name in SECTION_NAMES]
        return [(name, section) for name, section in pairs if section is not None]

    def compiled(self) -> dict[str, CompiledSection]:
        """Section name -> compiled pydantic model, built on first use."""
        if self._compiled is None:
            self._compiled = {
                name: CompiledSection.build(name, section) for name, section in self.sections()
            }
        return self._compiled


FieldRule.model_rebuild()


@dataclass(frozen=True)
class Violation:
    """One failed constraint."""

    path: str
    constraint: str
    message: str
    value: Any = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "constraint": self.constraint,
            "message": self.message,
            "value": self.value,
        }


# ── compiled section models ──────────────────────────────────


class _Section(BaseModel):
    """Base of every generated section model."""

    model_config = ConfigDict(regex_engine="python-re")

    def model_post_init(self, context: Any, /) -> None:
        # Substituted defaults and pass-through extras are part of the output
        for name, info in type(self).model_fields.items():
            if info.default_factory is not None:
                self.__pydantic_fields_set__.add(name)
        if self.__pydantic_extra__:
            self.__pydantic_fields_set__.update(self.__pydantic_extra__)


class _OpenSection(_Section):
    model_config = ConfigDict(extra="allow")


class _ClosedSection(_Section):
    model_config = ConfigDict(extra="forbid")


@functools.cache
def _format_adapter(fmt: str) -> TypeAdapter[Any]:
    return TypeAdapter(_FORMAT_TYPES[fmt])


def _check_format(fmt: str) -> Callable[[Any], Any]:
    def check(value: Any) -> Any:
        try:
            _format_adapter(fmt).validate_python(value)
        except ValidationError:
            raise PydanticCustomError(
                "format", "must be a valid {format}", {"format": fmt}
            ) from None
        # Keep the caller's string; formats constrain, they do not convert
        return value

    return check


def _one_of(allowed: list[Any]) -> Callable[[Any], Any]:
    def check(value: Any) -> Any:
        if value not in allowed:
            raise PydanticCustomError(
                "enum", "must be one of {allowed}", {"allowed": ", ".join(map(repr, allowed))}
            )
        return value

    return check


def _transform(transforms: list[str]) -> Callable[[Any], Any]:
    def apply(value: Any) -> Any:
        if isinstance(value, str):
            for name in transforms:
                value = _TRANSFORMS[name](value)
        return value

    return apply


def _constrained(base: Any, **constraints: Any) -> Any:
    present = {key: value for key, value in constraints.items() if value is not None}
    return Annotated[base, Field(**present)] if present else base


def _annotation(rule: FieldRule, *, strict: bool) -> Any:
    """Translate a :class:`FieldRule` into a pydantic type annotation."""
    annotation: Any
    if rule.enum is not None and rule.type in ("string", "any"):
        annotation = Literal[tuple(rule.enum)]
    elif rule.type == "string":
        annotation = _constrained(
            StrictStr if strict else str,
            min_length=rule.min_length,
            max_length=rule.max_length,
            pattern=rule.pattern,
        )
    elif rule.type == "integer":
        annotation = _constrained(
            StrictInt if strict else int, ge=rule.minimum, le=rule.maximum
        )
    elif rule.type == "number":
        annotation = _constrained(
            StrictFloat if strict else float, ge=rule.minimum, le=rule.maximum
        )
    elif rule.type == "boolean":
        annotation = StrictBool if strict else bool
    elif rule.type == "array":
        item = _annotation(rule.items, strict=strict) if rule.items is not None else Any
        annotation = _constrained(
            list[item],  # type: ignore[valid-type]
            min_length=rule.min_length,
            max_length=rule.max_length,
        )
    elif rule.type == "object" and rule.properties is not None:
        annotation = _section_model(rule.properties, rule.reject_unknown, strict=strict)
    elif rule.type == "object":
        annotation = dict[str, Any]
    else:
        annotation = Any

    if rule.enum is not None and rule.type not in ("string", "any"):
        annotation = Annotated[annotation, AfterValidator(_one_of(rule.enum))]
    if rule.format is not None:
        annotation = Annotated[annotation, AfterValidator(_check_format(rule.format))]
    if rule.transforms:
        annotation = Annotated[annotation, BeforeValidator(_transform(rule.transforms))]
    return annotation


def _section_model(
    properties: dict[str, FieldRule], reject_unknown: bool, *, strict: bool
) -> type[_Section]:
    fields: dict[str, Any] = {}
    for index, (name, rule) in enumerate(properties.items()):
        # Declared names need not be identifiers ("X-Tenant"); they live in the alias
        if rule.required:
            info = Field(alias=name)
        elif rule.has_default:
            info = Field(alias=name, default_factory=functools.partial(copy.deepcopy, rule.default))
        else:
            info = Field(None, alias=name)
        fields[f"field_{index}"] = (_annotation(rule, strict=strict), info)

    base = _ClosedSection if reject_unknown else _OpenSection
    return create_model("Section", __base__=base, **fields)


@dataclass(frozen=True)
class CompiledSection:
    """A section schema turned into a pydantic model."""

    name: str
    model: type[_Section]
    case_insensitive: bool

    @classmethod
    def build(cls, name: str, section: SectionSchema) -> CompiledSection:
        model = _section_model(section.properties, section.reject_unknown, strict=name == "body")
        return cls(name, model, case_insensitive=name == "headers")

    def validate(self, raw: dict[str, Any]) -> tuple[dict[str, Any], list[Violation]]:
        data, original_keys = self._match_keys(raw)
        try:
            instance = self.model.model_validate(data)
        except ValidationError as exc:
            return {}, [self._violation(error) for error in exc.errors()]

        out = instance.model_dump(by_alias=True, exclude_unset=True)
        if original_keys:
            out = {original_keys.get(key, key): value for key, value in out.items()}
        return out, []

    def _match_keys(self, raw: dict[str, Any]) -> tuple[dict[str, Any], dict[str, str]]:
        """Rename headers to their declared spelling, remembering the original."""
        if not self.case_insensitive:
            return raw, {}
        declared = {field.alias.lower(): field.alias for field in self.model.model_fields.values()}
        data: dict[str, Any] = {}
        original_keys: dict[str, str] = {}
        for key, value in raw.items():
            target = declared.get(key.lower(), key)
            if target != key:
                original_keys[target] = key
            data[target] = value
        return data, original_keys

    def _violation(self, error: Any) -> Violation:
        path = self.name
        for part in error["loc"]:
            path += f"[{part}]" if isinstance(part, int) else f".{part}"
        constraint = _CONSTRAINTS.get(error["type"], "type")
        value = None if constraint == "required" else error.get("input")
        return Violation(path, constraint, error["msg"], value)


def validate_request(
    schema: RequestSchema, context: RequestContext
) -> tuple[dict[str, Any], list[Violation]]:
    """Validate every declared section of *context* against *schema*.

    Returns ``(normalized, violations)``.  ``normalized`` maps section name
    to its normalized value; it is only meaningful when ``violations`` is
    empty.
    """
    normalized: dict[str, Any] = {}
    violations: list[Violation] = []

    for name, compiled in schema.compiled().items():
        raw = context.section(name)
        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            violations.append(Violation(name, "type", "expected object", raw))
            continue
        normalized[name], found = compiled.validate(raw)
        violations.extend(found)

    return normalized, violations
