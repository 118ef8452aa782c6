# app/kyc/model.py
from __future__ import annotations

from enum import Enum


class KycStatus(str, Enum):
    PENDING = "PENDING"
    VERIFIED = "VERIFIED"
    REJECTED = "REJECTED"


class KycDocumentType(str, Enum):
    NATIONAL_ID = "national_id"
    BUSINESS_REGISTRATION = "business_registration"


# form field -> stored document type, in display order
REQUIRED_FILES: dict[KycDocumentType, tuple[tuple[str, str], ...]] = {
    KycDocumentType.NATIONAL_ID: (("idFront", "ID_FRONT"), ("idBack", "ID_BACK")),
    KycDocumentType.BUSINESS_REGISTRATION: (("businessCert", "BUSINESS_CERT"),),
}
