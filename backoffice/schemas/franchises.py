from pydantic import BaseModel


class AddressIn(BaseModel):
    street: str = ""
    city: str = ""
    state: str = ""
    pincode: str = ""


class FranchiseFormIn(BaseModel):
    name: str = ""
    owner_name: str = ""
    email: str = ""
    mobile: str = ""
    status: str = "active"
    address: AddressIn = AddressIn()
    staging_session_id: str | None = None
