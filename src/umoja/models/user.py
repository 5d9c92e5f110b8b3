"""User directory records.

Users are owned by the identity collaborator; the core only reads the
fields it needs and writes the few it owns (verification status and
student tier).
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Optional

from umoja.models.engagement import StudentTier
from umoja.models.trust import VerificationStatus


class Role(str, enum.Enum):
    FARMER = "FARMER"
    BUYER = "BUYER"
    STUDENT = "STUDENT"
    LECTURER = "LECTURER"
    ADMIN = "ADMIN"


@dataclass
class UserRecord:
    user_id: str
    role: Role
    first_name: str = ""
    phone_number: str = ""
    # Farmer fields
    verification_status: Optional[VerificationStatus] = None
    rejection_reason: Optional[str] = None
    # Student fields
    current_tier: Optional[StudentTier] = None
    tech_stack_preferences: list[str] = field(default_factory=list)
    # Lecturer fields
    institution: Optional[str] = None

    def to_document(self) -> dict[str, Any]:
        return {
            "_id": self.user_id,
            "role": self.role.value,
            "first_name": self.first_name,
            "phone_number": self.phone_number,
            "verification_status": (
                self.verification_status.value if self.verification_status else None
            ),
            "rejection_reason": self.rejection_reason,
            "current_tier": self.current_tier.value if self.current_tier else None,
            "tech_stack_preferences": list(self.tech_stack_preferences),
            "institution": self.institution,
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> UserRecord:
        status = doc.get("verification_status")
        tier = doc.get("current_tier")
        return cls(
            user_id=doc["_id"],
            role=Role(doc["role"]),
            first_name=doc.get("first_name", ""),
            phone_number=doc.get("phone_number", ""),
            verification_status=VerificationStatus(status) if status else None,
            rejection_reason=doc.get("rejection_reason"),
            current_tier=StudentTier(tier) if tier else None,
            tech_stack_preferences=list(doc.get("tech_stack_preferences") or []),
            institution=doc.get("institution"),
        )
