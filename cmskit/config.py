"""Project configuration: the cms-config.json file.

cms-config.json declares the API connection plus the component types and pages
a site uses. ``cms sync`` pushes the declarations to the server.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Union

from cmskit.errors import ConfigError, SchemaValidationError
from cmskit.schema import CONFIG_SCHEMA, check_payload


logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILENAME = "cms-config.json"

PLACEHOLDER_BASE_URL = "https://your-cms-api.com/api"
PLACEHOLDER_API_KEY = "YOUR_API_KEY"

CONFIG_TEMPLATE = """{
  "api": {
    "baseUrl": "https://your-cms-api.com/api",
    "apiKey": "YOUR_API_KEY"
  },
  "components": {
    "hero_section": {
      "label": "Hero Section",
      "fields": [
        { "name": "title", "type": "text", "label": "Title" },
        { "name": "subtitle", "type": "textarea", "label": "Subtitle" },
        { "name": "image", "type": "media", "label": "Background image" }
      ]
    },
    "text_area": {
      "label": "Text Block",
      "fields": [{ "name": "content", "type": "richtext", "label": "Content" }]
    }
  },
  "pages": [
    {
      "slug": "home",
      "title": "Home",
      "allowed_blocks": ["hero_section", "text_area"]
    }
  ]
}
"""


@dataclass(frozen=True)
class ApiConfig:
    """Connection settings for the CMS API."""
    base_url: str
    api_key: str


@dataclass(frozen=True)
class CmsConfig:
    """Parsed cms-config.json.

    Attributes:
        api: Connection settings
        components: Component declarations keyed by component slug
        pages: Page declarations
    """
    api: ApiConfig
    components: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    pages: List[Dict[str, Any]] = field(default_factory=list)

    def structure(self) -> Dict[str, Any]:
        """The part of the config that is synced to the server (everything but ``api``)."""
        return {"components": self.components, "pages": self.pages}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CmsConfig":
        """Create CmsConfig from a decoded config file.

        Raises:
            ConfigError: If the data violates the config schema
        """
        try:
            check_payload(CONFIG_SCHEMA, data, DEFAULT_CONFIG_FILENAME)
        except SchemaValidationError as exc:
            raise ConfigError(str(exc)) from exc
        api = data["api"]
        return cls(
            api=ApiConfig(base_url=api["baseUrl"].rstrip("/"), api_key=api["apiKey"]),
            components=dict(data.get("components") or {}),
            pages=list(data.get("pages") or []),
        )


def load_config(path: Union[str, Path]) -> CmsConfig:
    """Read and validate a cms-config.json file.

    Raises:
        ConfigError: If the file is missing, not JSON, invalid, or still holds
            the template's placeholder credentials
    """
    path = Path(path)
    if not path.exists():
        raise ConfigError(f"{path.name} not found. Run \"cms init\" first.")
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except ValueError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc

    config = CmsConfig.from_dict(data)
    if config.api.base_url in ("", PLACEHOLDER_BASE_URL):
        raise ConfigError(f"Please configure api.baseUrl in {path.name}")
    if config.api.api_key in ("", PLACEHOLDER_API_KEY):
        raise ConfigError(f"Please configure api.apiKey in {path.name}")
    logger.debug(
        "Loaded %s: %d components, %d pages", path, len(config.components), len(config.pages)
    )
    return config


def write_template(path: Union[str, Path]) -> Path:
    """Write the starter cms-config.json.

    Raises:
        ConfigError: If the file already exists
    """
    path = Path(path)
    if path.exists():
        raise ConfigError(f"{path.name} already exists")
    path.write_text(CONFIG_TEMPLATE, encoding="utf-8")
    return path


__all__ = [
    "DEFAULT_CONFIG_FILENAME",
    "CONFIG_TEMPLATE",
    "ApiConfig",
    "CmsConfig",
    "load_config",
    "write_template",
]
