# controlplane/schemas/resources.py
"""
Records returned by the control plane API

The engine gateway emits lowerCamelCase keys and 64-bit ids as strings;
both are accepted here and exposed as snake_case / int.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _Record(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
    )


class User(_Record):
    """An identity that owns devices"""
    id: int
    name: str
    display_name: str = ""
    email: str = ""
    created_at: Optional[datetime] = None


class Node(_Record):
    """A registered device, always owned by exactly one user"""
    id: int
    name: str = ""
    given_name: str = ""
    user: Optional[User] = None
    ip_addresses: List[str] = Field(default_factory=list)
    machine_key: str = ""
    node_key: str = ""
    online: bool = False
    last_seen: Optional[datetime] = None
    expiry: Optional[datetime] = None
    created_at: Optional[datetime] = None
    register_method: str = ""
    forced_tags: List[str] = Field(default_factory=list)
    valid_tags: List[str] = Field(default_factory=list)
    invalid_tags: List[str] = Field(default_factory=list)


class PreAuthKey(_Record):
    """
    Secret a device uses to join without interactive approval

    Single-use unless reusable; consumption is tracked by the engine.
    """
    id: int = 0
    user: Optional[User] = None
    key: str
    reusable: bool = False
    ephemeral: bool = False
    used: bool = False
    expiration: Optional[datetime] = None
    created_at: Optional[datetime] = None
    acl_tags: List[str] = Field(default_factory=list)


class ApiKey(_Record):
    """API key metadata; the secret itself is only returned at creation"""
    id: int = 0
    prefix: str
    expiration: Optional[datetime] = None
    created_at: Optional[datetime] = None
    last_seen: Optional[datetime] = None
