"""YAML configuration parser for global table setup."""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import ValidationError

from .models import GlobalTablesConfig, ProviderConfig, ServiceConfig


class ConfigValidationError(Exception):
    """Exception raised when configuration validation fails."""

    def __init__(self, message: str, errors: Optional[List[Dict]] = None):
        self.message = message
        self.errors = errors or []
        super().__init__(self.message)

    def __str__(self) -> str:
        """Format validation errors for display."""
        if not self.errors:
            return self.message

        error_lines = [self.message, ""]
        for error in self.errors:
            location = " -> ".join(str(loc) for loc in error.get("loc", []))
            msg = error.get("msg", "Unknown error")
            error_lines.append(f"  - {location}: {msg}")

        return "\n".join(error_lines)


class Config:
    """Loads a serverless.yml-style service file and its globalTables section."""

    def __init__(
        self,
        config_path: str,
        stage: Optional[str] = None,
        region: Optional[str] = None,
    ):
        """Initialize configuration manager.

        Args:
            config_path: Path to the service YAML file
            stage: Stage override (takes precedence over provider.stage)
            region: Region override (takes precedence over provider.region)
        """
        self.config_path = Path(config_path)
        self.stage = stage
        self.region = region
        self.data: Dict = {}
        self.service: Optional[ServiceConfig] = None

    def load(self) -> "Config":
        """Load and validate configuration from the YAML file.

        Returns:
            Self for method chaining

        Raises:
            ConfigValidationError: If configuration is invalid
            FileNotFoundError: If configuration file doesn't exist
        """
        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        try:
            with open(self.config_path, "r") as f:
                self.data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"Failed to parse YAML: {e}")

        if not isinstance(self.data, dict):
            raise ConfigValidationError("Configuration root must be a mapping")

        return self.load_dict(self.data)

    def load_dict(self, data: Dict[str, Any]) -> "Config":
        """Validate an already-parsed configuration mapping."""
        self.data = data
        validation_errors = self.validate()
        if validation_errors:
            raise ConfigValidationError(
                f"Configuration validation failed with {len(validation_errors)} error(s)",
                validation_errors,
            )

        self.service = ServiceConfig(**self._service_data())
        return self

    def validate(self) -> List[Dict]:
        """Validate configuration against schema.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []

        if not self.data.get("service"):
            errors.append({"loc": ["service"], "msg": "Required field 'service' is missing"})

        provider = self._provider_data()
        try:
            ProviderConfig(**provider)
        except ValidationError as e:
            for error in e.errors():
                errors.append({"loc": ["provider"] + list(error["loc"]), "msg": error["msg"]})

        global_tables = self._global_tables_data()
        if global_tables is not None:
            if not isinstance(global_tables, dict):
                errors.append(
                    {"loc": ["custom", "globalTables"], "msg": "globalTables must be a mapping"}
                )
            else:
                try:
                    GlobalTablesConfig(**global_tables)
                except ValidationError as e:
                    for error in e.errors():
                        errors.append(
                            {
                                "loc": ["custom", "globalTables"] + list(error["loc"]),
                                "msg": error["msg"],
                            }
                        )

        if not errors:
            try:
                ServiceConfig(**self._service_data())
            except ValidationError as e:
                for error in e.errors():
                    errors.append({"loc": list(error["loc"]), "msg": error["msg"]})

        return errors

    @property
    def global_tables(self) -> Optional[GlobalTablesConfig]:
        """The globalTables section, or None when it is absent or empty."""
        return self.service.global_tables if self.service else None

    def load_template(self) -> Dict[str, Any]:
        """Read the compiled CloudFormation template used for regional stacks.

        Raises:
            ConfigValidationError: If the template is missing or unreadable
        """
        template_path = Path(self.global_tables.template_path)
        if not template_path.is_absolute():
            template_path = self.config_path.parent / template_path

        if not template_path.exists():
            raise ConfigValidationError(
                f"Compiled template not found: {template_path}. "
                "Package or deploy the service first, or set createStack: false"
            )

        try:
            with open(template_path, "r") as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigValidationError(f"Failed to parse template {template_path}: {e}")

    def _provider_data(self) -> Dict[str, Any]:
        provider = dict(self.data.get("provider") or {})
        if self.stage:
            provider["stage"] = self.stage
        if self.region:
            provider["region"] = self.region
        return {k: v for k, v in provider.items() if k in ("region", "stage")}

    def _global_tables_data(self):
        custom = self.data.get("custom") or {}
        if not isinstance(custom, dict):
            return None
        global_tables = custom.get("globalTables")
        # An empty section means the feature is off
        if not global_tables:
            return None
        return global_tables

    def _service_data(self) -> Dict[str, Any]:
        service = self.data.get("service")
        # serverless.yml also allows `service: {name: ...}`
        if isinstance(service, dict):
            service = service.get("name")
        return {
            "service": service,
            "provider": self._provider_data(),
            "global_tables": self._global_tables_data(),
        }
