"""
Pydantic models for the Minecraft custom resource and the status payloads.

The spec models double as the source of the CRD's openAPIV3Schema
(see crd.py), so field names follow Kubernetes camelCase conventions.
"""
from datetime import datetime
from enum import Enum
from typing import Dict, List, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from minecraft_operator.errors import SerializationError


class GameMode(str, Enum):
    SURVIVAL = "Survival"
    CREATIVE = "Creative"
    ADVENTURE = "Adventure"
    SPECTATOR = "Spectator"


class ServerConfig(BaseModel):
    """Game server settings passed to the container as environment."""
    model_config = ConfigDict(frozen=True)

    motd: str = Field(..., min_length=1, description="World name shown in the server list")
    gamemode: GameMode = Field(
        default=GameMode.SURVIVAL,
        description="Default game mode for new players",
    )
    env: Optional[Dict[str, str]] = Field(
        default=None,
        description="Extra environment variables; override the generated ones",
    )


class StorageConfig(BaseModel):
    """Persistent world storage."""
    model_config = ConfigDict(frozen=True)

    size: str = Field(
        default="10Gi",
        pattern=r"^[0-9]+(\.[0-9]+)?(Ki|Mi|Gi|Ti|Pi|Ei|k|M|G|T|P|E)?$",
        description="Requested capacity of the world volume",
    )
    mountPath: str = Field(default="/data", description="Mount path inside the container")
    storageClassName: Optional[str] = Field(
        default=None,
        description="Storage class for the claim; cluster default when unset",
    )


class MinecraftSpec(BaseModel):
    """Desired state of a Minecraft server."""
    model_config = ConfigDict(frozen=True)

    image: str = Field(
        ...,
        min_length=1,
        description="Container image reference",
        examples=["itzg/minecraft-server"],
    )
    server: ServerConfig
    storage: StorageConfig = Field(default_factory=StorageConfig)
    nodePort: bool = Field(
        default=False,
        description="Expose the server on fixed node ports",
    )


class ObjectMeta(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    name: str
    namespace: str
    uid: str = ""
    resourceVersion: Optional[str] = None
    finalizers: List[str] = []
    deletionTimestamp: Optional[str] = None


class ObjectKey(NamedTuple):
    """Identity of a custom resource instance; the work queue key."""
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


class Minecraft(BaseModel):
    """A Minecraft custom resource instance as read from the API server."""
    model_config = ConfigDict(extra="ignore", frozen=True)

    apiVersion: str
    kind: str
    metadata: ObjectMeta
    spec: MinecraftSpec

    @classmethod
    def from_body(cls, body: dict) -> "Minecraft":
        """Parse a raw API object. Raises SerializationError on malformed data."""
        try:
            return cls.model_validate(body)
        except ValidationError as e:
            name = (body.get("metadata") or {}).get("name", "<unknown>")
            raise SerializationError(f"Invalid Minecraft object {name}: {e}") from e

    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(self.metadata.namespace, self.metadata.name)

    @property
    def is_deleting(self) -> bool:
        return bool(self.metadata.deletionTimestamp)

    def has_finalizer(self, finalizer: str) -> bool:
        return finalizer in self.metadata.finalizers


class DiagnosticsResponse(BaseModel):
    """Payload of the status endpoint."""
    last_event: datetime
    reporter: str
