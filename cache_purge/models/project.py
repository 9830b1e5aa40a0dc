"""Project (site) configuration models."""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


METADATA_JSON_PATH = "/metadata.json"
HEADERS_JSON_PATH = "/.helix/headers.json"
CONFIG_JSON_PATH = "/.helix/config.json"


class CDNType(str, Enum):
    """Supported production CDN types."""
    FASTLY = "fastly"
    CLOUDFLARE = "cloudflare"
    AKAMAI = "akamai"
    CLOUDFRONT = "cloudfront"
    MANAGED = "managed"


class ProductionCDNConfig(BaseModel):
    """BYO production CDN configuration (`cdn.prod`).

    The model is deliberately loose: each purge client validates only the
    fields it needs, so a partially configured CDN still parses.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: Optional[str] = None
    host: Optional[str] = None
    plan: Optional[str] = None

    # fastly
    service_id: Optional[str] = Field(None, alias="serviceId")
    auth_token: Optional[str] = Field(None, alias="authToken")

    # cloudflare
    zone_id: Optional[str] = Field(None, alias="zoneId")
    api_token: Optional[str] = Field(None, alias="apiToken")

    # akamai
    endpoint: Optional[str] = None
    client_secret: Optional[str] = Field(None, alias="clientSecret")
    client_token: Optional[str] = Field(None, alias="clientToken")
    access_token: Optional[str] = Field(None, alias="accessToken")

    # cloudfront
    distribution_id: Optional[str] = Field(None, alias="distributionId")
    access_key_id: Optional[str] = Field(None, alias="accessKeyId")
    secret_access_key: Optional[str] = Field(None, alias="secretAccessKey")

    # managed
    env_id: Optional[str] = Field(None, alias="envId")


class ContentConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    content_bus_id: str = Field(alias="contentBusId")


class CodeConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    owner: Optional[str] = None
    repo: Optional[str] = None


class CDNSection(BaseModel):
    model_config = ConfigDict(extra="allow")

    prod: Optional[ProductionCDNConfig] = None


class MetadataConfig(BaseModel):
    model_config = ConfigDict(extra="allow")

    source: List[str] = Field(default_factory=lambda: [METADATA_JSON_PATH])

    @field_validator("source", mode="before")
    @classmethod
    def coerce_list(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [value]
        return value


class ProjectConfig(BaseModel):
    """The subset of a site configuration the purge service reads."""

    model_config = ConfigDict(extra="allow")

    content: ContentConfig
    code: Optional[CodeConfig] = None
    cdn: Optional[CDNSection] = None
    headers: Optional[Dict[str, Any]] = None
    metadata: Optional[MetadataConfig] = None

    @property
    def content_bus_id(self) -> str:
        return self.content.content_bus_id

    @property
    def production_cdn(self) -> Optional[ProductionCDNConfig]:
        return self.cdn.prod if self.cdn else None

    @property
    def metadata_paths(self) -> List[str]:
        if self.metadata and self.metadata.source:
            return list(self.metadata.source)
        return [METADATA_JSON_PATH]
