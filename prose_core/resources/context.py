"""Project reference files for the context assistant, discovered by glob pattern."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, List, Optional

from prose_core.domain.resources import ContextResourceContent, ContextResourceSummary
from prose_core.infrastructure.logging.logger import logger


EXCLUDED_DIRS = {"node_modules", ".git", ".svn", ".hg", "dist", "out"}


def normalize_key(path: str) -> str:
    key = path.strip().replace("\\", "/")
    while key.startswith("./"):
        key = key[2:]
    return key.lstrip("/").lower()


class LocalContextResourceProvider:
    """Snapshot of the matching files under ``project_root`` taken at construction."""

    def __init__(self, project_root: str | Path, patterns: Dict[str, List[str]], groups: Optional[Iterable[str]] = None) -> None:
        self.project_root = Path(project_root).expanduser().resolve()
        selected = list(groups) if groups is not None else list(patterns.keys())
        self._resources: Dict[str, tuple[ContextResourceSummary, Path]] = {}
        for group in selected:
            for pattern in patterns.get(group, []):
                self._collect(group, pattern)

    def list_resources(self) -> List[ContextResourceSummary]:
        return [summary for summary, _ in self._resources.values()]

    def load_resources(self, paths: List[str]) -> List[ContextResourceContent]:
        contents: List[ContextResourceContent] = []
        for requested in paths:
            entry = self._resources.get(normalize_key(requested))
            if entry is None:
                logger.info("Context resource not found", extra={"extra": {"path": requested}})
                continue
            summary, file_path = entry
            try:
                text = file_path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as exc:
                logger.warning(
                    "Failed to read context resource",
                    extra={"extra": {"path": summary.path, "error": str(exc)}},
                )
                continue
            contents.append(
                ContextResourceContent(
                    group=summary.group,
                    path=summary.path,
                    label=summary.label,
                    content=text,
                    workspace_folder=summary.workspace_folder,
                )
            )
        return contents

    # ---- helpers -------------------------------------------------

    def _collect(self, group: str, pattern: str) -> None:
        normalized = pattern.strip().replace("\\", "/").lstrip("/")
        if not normalized:
            return
        try:
            matches = sorted(self.project_root.glob(normalized))
        except (ValueError, OSError) as exc:
            logger.warning(
                "Invalid context pattern",
                extra={"extra": {"pattern": normalized, "error": str(exc)}},
            )
            return
        for match in matches:
            if not match.is_file():
                continue
            relative = match.relative_to(self.project_root)
            if any(part in EXCLUDED_DIRS for part in relative.parts[:-1]):
                continue
            rel = relative.as_posix()
            key = normalize_key(rel)
            if key in self._resources:
                continue
            summary = ContextResourceSummary(
                group=group,
                path=rel,
                label=match.stem.replace("-", " ").replace("_", " ").strip() or match.name,
                workspace_folder=self.project_root.name,
            )
            self._resources[key] = (summary, match)


def format_catalog_for_prompt(resources: List[ContextResourceSummary]) -> str:
    if not resources:
        return "## Project Resources\n\nNo project resources available."
    grouped: Dict[str, List[ContextResourceSummary]] = {}
    for resource in resources:
        grouped.setdefault(resource.group, []).append(resource)
    lines = ["## Project Resources", ""]
    for group, items in grouped.items():
        lines.append(f"### {group}")
        for item in items:
            suffix = f" - {item.label}" if item.label and item.label.lower() != item.path.lower() else ""
            lines.append(f"- `{item.path}`{suffix}")
        lines.append("")
    return "\n".join(lines)
