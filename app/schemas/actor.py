"""
Authenticated actor as seen by the core.
"""
from pydantic import BaseModel, ConfigDict, Field

from app.db.models.user import ADMIN_ROLES, ActorStatus, Role


class ActorContext(BaseModel):
    """
    Identity handed to the core by the authentication layer.

    Only the id, role and account status matter here; everything else about
    the actor lives with the identity provider.
    """
    actor_id: int = Field(..., description="Actor primary key")
    role: Role = Field(..., description="WORKER, ESTABLISHMENT, ADMIN or SUPER_ADMIN")
    status: ActorStatus = Field(default=ActorStatus.VALIDATED, description="Account status")

    model_config = ConfigDict(frozen=True)

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES
