from datetime import datetime

from pydantic import BaseModel, Field

# Rights understood by the redaction engine.
RIGHT_DELETE_REVISION = "deleterevision"
RIGHT_DELETE_LOG_ENTRY = "deletelogentry"
RIGHT_DELETED_HISTORY = "deletedhistory"
RIGHT_SUPPRESS = "suppressrevision"


class Actor(BaseModel):
    """The identity performing a request and the rights it holds."""

    user_id: int
    name: str
    rights: frozenset[str] = Field(default_factory=frozenset)

    model_config = {"frozen": True}

    def is_allowed(self, right: str) -> bool:
        return right in self.rights

    @property
    def is_elevated(self) -> bool:
        """True if the actor may view and alter RESTRICTED records."""
        return RIGHT_SUPPRESS in self.rights


class SessionData(BaseModel):
    """Session data stored in the signed cookie."""

    user_id: int
    name: str
    rights: list[str] = []
    created_at: datetime
    expires_at: datetime

    def to_actor(self) -> Actor:
        return Actor(user_id=self.user_id, name=self.name, rights=frozenset(self.rights))
