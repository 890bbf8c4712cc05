"""
Authentication Models

Typed caller context produced after JWT verification.
"""

from typing import List
from pydantic import BaseModel, Field, ConfigDict, field_validator

from ..tenants import validate_tenant_id


class CallerContext(BaseModel):
    """
    Authenticated caller derived from a verified JWT.

    `tenant_id` is the only source of tenant scope for a request; it is
    never read from the request body.
    """

    subject: str = Field(
        ...,
        min_length=1,
        description="Service or user identifier from the `sub` claim.",
    )

    tenant_id: str = Field(
        ...,
        description="Tenant the caller is acting for.",
    )

    scopes: List[str] = Field(
        default_factory=list,
        description="Operations granted to the caller.",
    )

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )

    @field_validator("tenant_id", mode="before")
    @classmethod
    def _validate_tenant_id(cls, v: str) -> str:
        return validate_tenant_id(v)
