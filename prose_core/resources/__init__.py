"""Local resource collaborators: craft guides and project reference files."""

from .context import LocalContextResourceProvider, format_catalog_for_prompt
from .guides import GuideLoader, GuideRegistry

__all__ = ["GuideLoader", "GuideRegistry", "LocalContextResourceProvider", "format_catalog_for_prompt"]
