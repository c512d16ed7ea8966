import logging
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import EmailStr, Field

from errors import UpstreamFailure
from schemas import ApiModel
from services import Services, get_services

logger = logging.getLogger(__name__)

# Contact form endpoints kept at the root path for the marketing site.
router = APIRouter(tags=["Legacy"])


class ContactForm(ApiModel):
    full_name: str = Field(..., min_length=1)
    email: EmailStr
    phone_number: Optional[str] = None
    city: str = Field(..., min_length=1)
    contact_as: Optional[str] = None
    help_type: Optional[str] = None
    message: str = Field(..., min_length=1)
    preferred_contact: Optional[str] = None
    best_time: Optional[str] = None

    def as_row(self) -> list:
        # column order follows SHEET_HEADERS
        return [
            self.full_name,
            self.email,
            self.phone_number or "",
            self.city,
            self.contact_as or "",
            self.help_type or "",
            self.message,
            self.preferred_contact or "",
            self.best_time or "",
        ]


@router.get("/create-headers")
def create_headers(services: Services = Depends(get_services)):
    try:
        if not services.sheets.configured:
            raise RuntimeError("SPREADSHEET_ID is not set")
        services.sheets.create_headers()
    except Exception:
        logger.exception("Error creating headers")
        raise UpstreamFailure("Failed to create headers")
    return {"message": "Headers created"}


@router.post("/submit-form")
def submit_form(form: ContactForm, services: Services = Depends(get_services)):
    try:
        if not services.sheets.configured:
            raise RuntimeError("SPREADSHEET_ID is not set")
        services.sheets.append_rows([form.as_row()])
    except Exception:
        logger.exception("Error writing to sheet")
        raise UpstreamFailure("Failed to write data to sheet")
    return {"message": "Data written to sheet"}
