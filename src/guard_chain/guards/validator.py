"""ValidatorGuard — rejects or normalizes the request payload."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from guard_chain.errors import GuardError
from guard_chain.exceptions import GuardConfigError
from guard_chain.guards.base import Guard
from guard_chain.result import GuardResult
from guard_chain.schema import RequestSchema, validate_request

if TYPE_CHECKING:
    from guard_chain.context import RequestContext


class ValidatorGuard(Guard):
    """Validates body, query, params and headers against a :class:`RequestSchema`.

    On success the normalized sections (transforms applied, defaults
    filled in) replace the raw ones on the context.  On failure a single
    validation error lists every violation.

    Parameters:
        schema: The request schema, or a dict that parses into one.
        name:   Unique guard name.
    """

    _guard_type = "validator"
    _guard_description = "Validates and normalizes request payload sections"

    def __init__(self, schema: RequestSchema | dict[str, Any], *, name: str = "validator") -> None:
        self._name = name
        try:
            self.schema = (
                schema
                if isinstance(schema, RequestSchema)
                else RequestSchema.model_validate(schema)
            )
            self.schema.compiled()
        except (TypeError, ValueError) as exc:
            raise GuardConfigError(name, f"invalid schema: {exc}") from exc

    @property
    def name(self) -> str:
        return self._name

    def export(self) -> dict[str, Any]:
        data = super().export()
        data["config"] = {"schema": self.schema.model_dump(exclude_unset=True)}
        return data

    async def attempt(self, context: RequestContext) -> GuardResult:
        normalized, violations = validate_request(self.schema, context)
        if violations:
            return GuardResult.deny(
                GuardError.validation(self.name, [v.to_dict() for v in violations])
            )

        for section, value in normalized.items():
            setattr(context, section, value)
        return GuardResult.allow(self.name)
