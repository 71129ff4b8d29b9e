"""Declared resources: desired spec, observed status and cross-resource references."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Tuple, Type, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing_extensions import Annotated

from pocketid_sync.clients.pocketid import OIDCClientCredentials


class ResourceKind(str, Enum):
    """Kinds of declared resources."""
    USER = "User"
    ADMIN_USER = "AdminUser"
    GROUP = "Group"
    OIDC_CLIENT = "OIDCClient"
    USER_GROUP_BINDING = "UserGroupBinding"
    OIDC_CLIENT_GROUP_BINDING = "OIDCClientGroupBinding"


class ConditionType(str, Enum):
    """Health condition reported on a declared resource."""
    AVAILABLE = "Available"
    UNAVAILABLE = "Unavailable"
    INVARIANT_VIOLATED = "InvariantViolated"
    UNRESOLVED = "Unresolved"


class SpecModel(BaseModel):
    """Base for declared specs; accepts camelCase or snake_case keys."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")


# References

class LiteralReference(BaseModel):
    """An external identifier given verbatim."""
    type: Literal["literal"] = "literal"
    value: str = Field(..., min_length=1)

    def describe(self) -> str:
        return f"id {self.value!r}"


class PointerReference(BaseModel):
    """The observed identity of another declared resource, looked up by name."""
    type: Literal["pointer"] = "pointer"
    name: str = Field(..., min_length=1)

    def describe(self) -> str:
        return f"reference to {self.name!r}"


class SelectorReference(BaseModel):
    """A label selector. Declared but not resolvable."""
    type: Literal["selector"] = "selector"
    match_labels: Dict[str, str] = Field(default_factory=dict, alias="matchLabels")

    model_config = ConfigDict(populate_by_name=True)

    def describe(self) -> str:
        return f"selector {self.match_labels!r}"


Reference = Annotated[
    Union[LiteralReference, PointerReference, SelectorReference],
    Field(discriminator="type"),
]


def fold_reference(data: Dict[str, Any], field: str, prefix: str) -> None:
    """Fold the three mutually exclusive reference inputs into one tagged value.

    ``prefix`` is the camelCase stem used in declarations, e.g. ``user``
    accepts ``userId``, ``userIdRef`` and ``userIdSelector`` (or their
    snake_case spellings). Exactly one of them must be set. Already folded
    data (a ``field`` key and no raw inputs) is left untouched.

    Raises:
        ValueError: If zero or more than one input is set
    """
    literal = data.pop(f"{prefix}Id", None) or data.pop(f"{prefix}_id", None)
    pointer = data.pop(f"{prefix}IdRef", None) or data.pop(f"{prefix}_id_ref", None)
    selector = data.pop(f"{prefix}IdSelector", None) or data.pop(f"{prefix}_id_selector", None)

    given = [v for v in (literal, pointer, selector) if v is not None]
    if not given and field in data:
        return
    if len(given) != 1:
        raise ValueError(
            f"Exactly one of {prefix}Id, {prefix}IdRef or {prefix}IdSelector must be specified."
        )

    if literal is not None:
        data[field] = {"type": "literal", "value": literal}
    elif pointer is not None:
        name = pointer.get("name") if isinstance(pointer, dict) else pointer
        data[field] = {"type": "pointer", "name": name}
    else:
        labels = selector.get("matchLabels", selector.get("match_labels", {}))
        data[field] = {"type": "selector", "match_labels": labels}


# Specs

class UserParameters(SpecModel):
    """Desired state of a Pocket ID user."""
    username: str = Field(..., min_length=1)
    email: str = Field(..., min_length=1)
    first_name: str = Field(..., alias="firstName", min_length=1)
    last_name: str = Field("", alias="lastName")
    locale: str = ""
    disabled: bool = False
    custom_claims: Dict[str, str] = Field(default_factory=dict, alias="customClaims")


class AdminUserParameters(UserParameters):
    """Desired state of a user created with admin privileges."""


class GroupParameters(SpecModel):
    """Desired state of a Pocket ID user group."""
    name: str = Field(..., min_length=1)
    friendly_name: str = Field(..., alias="friendlyName", min_length=1)
    custom_claims: Dict[str, str] = Field(default_factory=dict, alias="customClaims")


class OIDCClientParameters(SpecModel):
    """Desired state of a Pocket ID OIDC client."""
    name: str = Field(..., min_length=1)
    callback_urls: List[str] = Field(default_factory=list, alias="callbackURLs")
    logout_callback_urls: List[str] = Field(default_factory=list, alias="logoutCallbackURLs")
    launch_url: str = Field("", alias="launchURL")
    is_public: bool = Field(False, alias="isPublic")
    pkce_enabled: bool = Field(False, alias="pkceEnabled")
    requires_reauthentication: bool = Field(False, alias="requiresReauthentication")
    logo_url: str = Field("", alias="logoUrl")
    credentials: OIDCClientCredentials = Field(default_factory=OIDCClientCredentials)


class UserGroupBindingParameters(SpecModel):
    """Membership of a user in a group."""
    user: Reference
    group: Reference

    @model_validator(mode="before")
    @classmethod
    def _fold_references(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            fold_reference(data, "user", "user")
            fold_reference(data, "group", "group")
        return data


class OIDCClientGroupBindingParameters(SpecModel):
    """Restriction of an OIDC client to members of a group."""
    client: Reference
    group: Reference

    @model_validator(mode="before")
    @classmethod
    def _fold_references(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            fold_reference(data, "client", "client")
            fold_reference(data, "group", "group")
        return data


SPEC_TYPES: Dict[ResourceKind, Type[SpecModel]] = {
    ResourceKind.USER: UserParameters,
    ResourceKind.ADMIN_USER: AdminUserParameters,
    ResourceKind.GROUP: GroupParameters,
    ResourceKind.OIDC_CLIENT: OIDCClientParameters,
    ResourceKind.USER_GROUP_BINDING: UserGroupBindingParameters,
    ResourceKind.OIDC_CLIENT_GROUP_BINDING: OIDCClientGroupBindingParameters,
}

BINDING_KINDS = (ResourceKind.USER_GROUP_BINDING, ResourceKind.OIDC_CLIENT_GROUP_BINDING)


# Observations

class UserObservation(BaseModel):
    id: str = ""
    username: str = ""
    email: str = ""
    first_name: str = ""
    last_name: str = ""
    locale: str = ""
    disabled: bool = False
    is_admin: bool = False
    user_groups: List[str] = Field(default_factory=list)
    custom_claims: Dict[str, str] = Field(default_factory=dict)


class GroupObservation(BaseModel):
    id: str = ""
    name: str = ""
    friendly_name: str = ""
    created_at: str = ""
    custom_claims: Dict[str, str] = Field(default_factory=dict)


class OIDCClientObservation(BaseModel):
    id: str = ""
    name: str = ""
    callback_urls: List[str] = Field(default_factory=list)
    logout_callback_urls: List[str] = Field(default_factory=list)
    launch_url: str = ""
    is_public: bool = False
    pkce_enabled: bool = False
    requires_reauthentication: bool = False
    has_logo: bool = False
    credentials: OIDCClientCredentials = Field(default_factory=OIDCClientCredentials)


class UserGroupBindingObservation(BaseModel):
    user: UserObservation = Field(default_factory=UserObservation)
    group: GroupObservation = Field(default_factory=GroupObservation)


class OIDCClientGroupBindingObservation(BaseModel):
    client: OIDCClientObservation = Field(default_factory=OIDCClientObservation)
    group: GroupObservation = Field(default_factory=GroupObservation)


# Status and the declared resource itself

class Condition(BaseModel):
    """Latest health condition with a human-readable message."""
    type: ConditionType
    message: str = ""
    last_transition_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ResourceStatus(BaseModel):
    """Last observed state of the external object."""
    observed_identity: str = ""
    stable_name: str = ""
    at_provider: Dict[str, Any] = Field(default_factory=dict)
    condition: Optional[Condition] = None

    def set_condition(self, condition_type: ConditionType, message: str = "") -> None:
        """Record the health condition, keeping the transition time if unchanged."""
        if self.condition is not None and self.condition.type == condition_type:
            self.condition.message = message
            return
        self.condition = Condition(type=condition_type, message=message)

    def record(self, identity: str, stable_name: str, observation: BaseModel) -> None:
        """Write the observed identity and fields.

        The stable name is only written the first time; afterwards it is the
        lookup key and never changes.
        """
        self.observed_identity = identity
        if not self.stable_name:
            self.stable_name = stable_name
        self.at_provider = observation.model_dump(mode="json")

    @property
    def condition_type(self) -> Optional[ConditionType]:
        return self.condition.type if self.condition else None


class ResourceDeclaration(BaseModel):
    """A user's statement of desired state for one external object.

    This is the shape accepted from configuration. Status belongs to the
    store and can not be declared.
    """

    model_config = ConfigDict(extra="forbid")

    kind: ResourceKind
    name: str = Field(..., min_length=1)
    spec: Any

    @model_validator(mode="after")
    def _typed_spec(self) -> "ResourceDeclaration":
        spec_type = SPEC_TYPES[self.kind]
        if not isinstance(self.spec, spec_type):
            self.spec = spec_type.model_validate(self.spec or {})
        return self

    @property
    def key(self) -> Tuple[ResourceKind, str]:
        return (self.kind, self.name)

    def to_resource(self) -> "DeclaredResource":
        """Fresh stored resource for this declaration, with empty status."""
        return DeclaredResource(kind=self.kind, name=self.name, spec=self.spec)


class DeclaredResource(ResourceDeclaration):
    """A declaration as kept in the store, together with its observed status."""

    model_config = ConfigDict(extra="ignore")

    status: ResourceStatus = Field(default_factory=ResourceStatus)
    deletion_requested: bool = False

    @property
    def is_binding(self) -> bool:
        return self.kind in BINDING_KINDS

    def to_record(self) -> Dict[str, Any]:
        """Serialize for persistence in the resource store."""
        return {
            "kind": self.kind.value,
            "name": self.name,
            "spec": self.spec.model_dump(mode="json", by_alias=True),
            "status": self.status.model_dump(mode="json"),
            "deletion_requested": self.deletion_requested,
        }
