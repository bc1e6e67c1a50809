"""
Pydantic input schemas for CCM instruction writes.

Payloads are validated here and handed to the repository as
model_dump(exclude_unset=True): a key reaches the store only when the
caller supplied it. On update the store skips omitted keys and null
values alike, so a field once declared can be changed but not un-set.
"""

from typing import Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ccm.hierarchy import ScopeRef
from ccm.models import ScopeLevel


class ScopeInput(BaseModel):
    """Scope a new instruction is declared at."""
    model_config = ConfigDict(extra="forbid")

    type: ScopeLevel = Field(..., description="customer, master_lease, rider or amendment")
    id: UUID = Field(..., description="Id of the hierarchy row")

    @field_validator('type', mode='before')
    @classmethod
    def validate_type(cls, v):
        """Reject levels outside the hierarchy."""
        return ScopeLevel.parse(v)

    def to_ref(self) -> ScopeRef:
        return ScopeRef(self.type, self.id)


class CCMInstructionFieldsInput(BaseModel):
    """Overridable CCM fields. Every field is optional; null means inherit."""
    model_config = ConfigDict(extra="forbid")

    # Cleaning requirements
    food_grade: Optional[bool] = None
    mineral_wipe: Optional[bool] = None
    kosher_wash: Optional[bool] = None
    kosher_wipe: Optional[bool] = None
    shop_oil_material: Optional[bool] = None
    oil_provider_contact: Optional[str] = None
    rinse_water_test_procedure: Optional[str] = None

    # Primary contact
    primary_contact_name: Optional[str] = Field(default=None, max_length=200)
    primary_contact_email: Optional[str] = Field(default=None, max_length=200)
    primary_contact_phone: Optional[str] = Field(default=None, max_length=50)

    # Estimate approval contact
    estimate_approval_contact_name: Optional[str] = Field(default=None, max_length=200)
    estimate_approval_contact_email: Optional[str] = Field(default=None, max_length=200)
    estimate_approval_contact_phone: Optional[str] = Field(default=None, max_length=50)

    # Dispo contact
    dispo_contact_name: Optional[str] = Field(default=None, max_length=200)
    dispo_contact_email: Optional[str] = Field(default=None, max_length=200)
    dispo_contact_phone: Optional[str] = Field(default=None, max_length=50)

    # Outbound dispo
    decal_requirements: Optional[str] = None
    nitrogen_applied: Optional[bool] = None
    nitrogen_psi: Optional[str] = Field(default=None, max_length=50)
    outbound_dispo_contact_email: Optional[str] = Field(default=None, max_length=200)
    outbound_dispo_contact_phone: Optional[str] = Field(default=None, max_length=50)
    documentation_required_prior_to_release: Optional[str] = None

    # Special fittings and notes
    special_fittings_vendor_requirements: Optional[str] = None
    additional_notes: Optional[str] = None


class SealingSectionInput(BaseModel):
    """Sealing override for one commodity."""
    model_config = ConfigDict(extra="forbid")

    commodity: str = Field(..., min_length=1, max_length=200)
    gasket_sealing_material: Optional[str] = Field(default=None, max_length=200)
    alternate_material: Optional[str] = Field(default=None, max_length=200)
    preferred_gasket_vendor: Optional[str] = Field(default=None, max_length=200)
    alternate_vendor: Optional[str] = Field(default=None, max_length=200)
    vsp_ride_tight: Optional[bool] = None
    sealing_requirements: Optional[str] = None
    inherit_from_parent: bool = Field(
        default=False,
        description="Placeholder row: keep the ancestor's section for this commodity"
    )
    sort_order: int = Field(default=0, description="Display order only")


class SealingSectionUpdate(SealingSectionInput):
    commodity: Optional[str] = Field(default=None, min_length=1, max_length=200)
    inherit_from_parent: Optional[bool] = None
    sort_order: Optional[int] = None


class LiningSectionInput(BaseModel):
    """Lining override for one commodity."""
    model_config = ConfigDict(extra="forbid")

    commodity: str = Field(..., min_length=1, max_length=200)
    lining_required: Optional[bool] = None
    lining_inspection_interval: Optional[str] = Field(default=None, max_length=100)
    lining_type: Optional[str] = Field(default=None, max_length=200)
    lining_plan_on_file: Optional[bool] = None
    lining_requirements: Optional[str] = None
    inherit_from_parent: bool = False
    sort_order: int = 0


class LiningSectionUpdate(LiningSectionInput):
    commodity: Optional[str] = Field(default=None, min_length=1, max_length=200)
    inherit_from_parent: Optional[bool] = None
    sort_order: Optional[int] = None
