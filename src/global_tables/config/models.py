"""Pydantic models for the service configuration."""

import re
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

REGION_PATTERN = "^[a-z]{2}(-gov|-iso[a-z]*)?-[a-z]+-[0-9]$"

# Accepted spellings of the global tables version
VERSION_ALIASES = {
    "v1": "v1",
    "2017.11.29": "v1",
    "v2": "v2",
    "2019.11.21": "v2",
}

DEFAULT_TEMPLATE_PATH = ".serverless/cloudformation-template-update-stack.json"


class GlobalTablesConfig(BaseModel):
    """The custom.globalTables section."""

    model_config = ConfigDict(populate_by_name=True)

    version: str = Field("v1", description="v1 (2017.11.29) or v2 (2019.11.21)")
    regions: List[str] = Field(..., min_length=1, description="Replica regions")
    create_stack: Optional[bool] = Field(
        None,
        alias="createStack",
        description="Deploy the service template into each replica region (v1 only)",
    )
    template_path: str = Field(DEFAULT_TEMPLATE_PATH, alias="templatePath", min_length=1)
    poll_interval: float = Field(5.0, alias="pollInterval", gt=0)
    stack_timeout: Optional[float] = Field(None, alias="stackTimeout", gt=0)

    @field_validator("version", mode="before")
    @classmethod
    def normalize_version(cls, v) -> str:
        """Accept both the short and the dated version names."""
        key = str(v).strip().lower()
        if key not in VERSION_ALIASES:
            raise ValueError(
                f"Unsupported global tables version: {v}. "
                f"Must be one of: {', '.join(VERSION_ALIASES)}"
            )
        return VERSION_ALIASES[key]

    @field_validator("regions")
    @classmethod
    def validate_regions(cls, v: List[str]) -> List[str]:
        """Validate region names and drop duplicates."""
        for region in v:
            if not isinstance(region, str) or not re.match(REGION_PATTERN, region):
                raise ValueError(f"Invalid AWS region: {region}")
        return list(dict.fromkeys(v))

    @model_validator(mode="after")
    def validate_create_stack(self):
        """Template deployment only makes sense for v1 global tables."""
        if self.version == "v2" and self.create_stack:
            raise ValueError(
                "createStack is not supported with version v2; "
                "2019.11.21 replicas are created by DynamoDB itself"
            )
        return self

    @property
    def deploy_stack(self) -> bool:
        """Whether the service template is deployed into replica regions."""
        if self.create_stack is None:
            return self.version == "v1"
        return self.create_stack


class ProviderConfig(BaseModel):
    """The provider section."""

    region: str = Field(..., pattern=REGION_PATTERN)
    stage: str = Field("dev", min_length=1, pattern="^[A-Za-z0-9-]+$")


class ServiceConfig(BaseModel):
    """A deployed service and its global table settings."""

    service: str = Field(..., min_length=1, max_length=128, pattern="^[A-Za-z][A-Za-z0-9-]*$")
    provider: ProviderConfig
    global_tables: Optional[GlobalTablesConfig] = None

    @property
    def stack_name(self) -> str:
        """CloudFormation stack name, {service}-{stage}."""
        return f"{self.service}-{self.provider.stage}"

    @property
    def region(self) -> str:
        return self.provider.region

    @model_validator(mode="after")
    def validate_source_region(self):
        """The source region cannot also be listed as a replica region."""
        if self.global_tables and self.provider.region in self.global_tables.regions:
            self.global_tables.regions = [
                r for r in self.global_tables.regions if r != self.provider.region
            ]
            if not self.global_tables.regions:
                raise ValueError(
                    f"globalTables.regions only lists the source region {self.provider.region}"
                )
        return self
