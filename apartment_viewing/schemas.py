"""Viewing request models shared by the wizard and the submission relay"""

from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator


FIELD_NAMES = (
    "name",
    "email",
    "phone",
    "age",
    "job",
    "livingArrangement",
    "agreementFee",
    "agreementDeposit",
    "agreementChecks",
)

AGREEMENT_FIELDS = ("agreementFee", "agreementDeposit", "agreementChecks")

FIELD_ERRORS = {
    "name": "Name must be at least 2 characters.",
    "email": "Please enter a valid email address.",
    "phone": "Phone number must be at least 10 digits.",
    "age": "Age is required.",
    "job": "Job information is required.",
    "livingArrangement": "Please provide information about who will be living in the apartment.",
    "agreementFee": "You must agree to the terms.",
    "agreementDeposit": "You must agree to the terms.",
    "agreementChecks": "You must agree to the terms.",
}

AGE_NOT_NUMERIC = "Age must be a number."


def empty_fields() -> Dict[str, Any]:
    """Blank step 1 form values"""
    return {
        name: (False if name in AGREEMENT_FIELDS else "")
        for name in FIELD_NAMES
    }


class Prefill(BaseModel):
    """Contact details handed to the scheduling widget"""
    name: str
    email: str
    phone: str


class ApplicantDetails(BaseModel):
    """Step 1 of the viewing request form, with per-field rules"""

    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=2)
    email: EmailStr
    phone: str = Field(..., min_length=10)
    age: str = Field(..., min_length=1)
    job: str = Field(..., min_length=2)
    living_arrangement: str = Field(..., alias="livingArrangement", min_length=2)
    agreement_fee: bool = Field(..., alias="agreementFee", description="Real estate fee: one month rent + VAT")
    agreement_deposit: bool = Field(..., alias="agreementDeposit", description="One month deposit")
    agreement_checks: bool = Field(..., alias="agreementChecks", description="12 post-dated checks")

    @field_validator("age")
    @classmethod
    def age_is_numeric(cls, value: str) -> str:
        if not value.strip().isdigit():
            raise ValueError(AGE_NOT_NUMERIC)
        return value

    @field_validator("agreement_fee", "agreement_deposit", "agreement_checks")
    @classmethod
    def must_agree(cls, value: bool) -> bool:
        if value is not True:
            raise ValueError(FIELD_ERRORS["agreementFee"])
        return value


class ViewingRequest(BaseModel):
    """
    Payload accepted by the submission relay.

    Only structural parsing happens here; business rules live in
    ApplicantDetails and are enforced by the wizard before submitting.
    """

    model_config = ConfigDict(populate_by_name=True, coerce_numbers_to_str=True)

    name: str
    email: str
    phone: str
    age: str
    job: str
    living_arrangement: str = Field(..., alias="livingArrangement")
    agreement_fee: bool = Field(..., alias="agreementFee")
    agreement_deposit: bool = Field(..., alias="agreementDeposit")
    agreement_checks: bool = Field(..., alias="agreementChecks")
    scheduling_reference: str = Field(
        ...,
        validation_alias=AliasChoices("schedulingReference", "calendlyEventUrl", "scheduling_reference"),
        serialization_alias="schedulingReference",
        description="Booking URI reported by the scheduling widget",
    )

    @property
    def agreed_to_all(self) -> bool:
        return self.agreement_fee and self.agreement_deposit and self.agreement_checks

    def to_payload(self) -> Dict[str, Any]:
        """JSON body sent to the relay endpoint"""
        return self.model_dump(by_alias=True)

    @classmethod
    def from_fields(cls, fields: Dict[str, Any], scheduling_reference: Optional[str]) -> "ViewingRequest":
        return cls.model_validate({**fields, "schedulingReference": scheduling_reference})
