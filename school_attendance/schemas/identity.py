from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .metadata import RegistrationMetadata, parse_metadata


# --- Base Schema (Shared properties) ---
class IdentityBase(BaseModel):
    user_id: str = Field(..., min_length=1, max_length=64, examples=["stu-0042"])
    display_name: Optional[str] = Field(None, max_length=100, examples=["Jane Doe"])
    department: Optional[str] = Field(None, max_length=100, examples=["Grade 7"])
    position: Optional[str] = Field(None, max_length=100, examples=["student"])
    reference_image_ref: Optional[str] = Field(None, max_length=500)


# --- Create Schema (Input) ---
class IdentityCreate(IdentityBase):
    # Produced by the external embedding model.
    embedding: List[float] = Field(..., min_length=1, description="face descriptor")
    employee_id: Optional[str] = Field(None, max_length=50, examples=["EMP-001"])


# --- Read Schema (Output) ---
class IdentityRead(IdentityBase):
    id: int
    descriptor: str
    registration_metadata: Optional[RegistrationMetadata] = None
    registered_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @field_validator("registration_metadata", mode="before")
    @classmethod
    def _parse_registration(cls, value):
        parsed = parse_metadata(value)
        return parsed if isinstance(parsed, RegistrationMetadata) else None


class IdentitySummary(IdentityBase):
    """Identity as returned by the API, without the stored descriptor."""

    id: int
    registered_at: datetime

    model_config = ConfigDict(from_attributes=True)
