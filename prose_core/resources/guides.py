"""Craft guide catalog + loader backed by a local directory."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Callable, Dict, List, Optional

from prose_core.domain.resources import GuideMetadata
from prose_core.infrastructure.logging.logger import logger


CACHE_TTL_SECONDS = 60.0


def _title_words(stem: str) -> str:
    return " ".join(w[:1].upper() + w[1:] for w in stem.split("-") if w)


class GuideRegistry:
    """Discover every ``.md`` guide under ``root`` and describe it for prompts."""

    def __init__(self, root: str | Path, clock: Optional[Callable[[], float]] = None) -> None:
        self.root = Path(root).expanduser().resolve()
        self._clock = clock or time.monotonic
        self._cache: Optional[List[GuideMetadata]] = None
        self._scanned_at = 0.0

    def list_available_guides(self) -> List[GuideMetadata]:
        now = self._clock()
        if self._cache is not None and (now - self._scanned_at) < CACHE_TTL_SECONDS:
            return list(self._cache)
        guides: List[GuideMetadata] = []
        if self.root.is_dir():
            self._scan(self.root, "", guides)
        else:
            logger.warning("Guides directory missing", extra={"extra": {"root": str(self.root)}})
        guides.sort(key=lambda g: (g.category, g.display_name))
        self._cache = guides
        self._scanned_at = now
        logger.info("Scanned craft guides", extra={"extra": {"root": str(self.root), "count": len(guides)}})
        return list(guides)

    def clear_cache(self) -> None:
        self._cache = None
        self._scanned_at = 0.0

    def format_guide_list_for_prompt(self, guides: List[GuideMetadata]) -> str:
        if not guides:
            return "## Available Craft Guides\n\nNo guides available."

        grouped: Dict[str, List[GuideMetadata]] = {}
        for guide in guides:
            grouped.setdefault(guide.category, []).append(guide)

        lines = ["## Available Craft Guides", ""]
        for category, items in grouped.items():
            lines.append(f"### {category}")
            for guide in items:
                lines.append(f"- `{guide.path}` - {guide.display_name}")
            lines.append("")
        return "\n".join(lines)

    # ---- helpers -------------------------------------------------

    def _scan(self, directory: Path, relative: str, guides: List[GuideMetadata]) -> None:
        for entry in sorted(directory.iterdir(), key=lambda p: p.name):
            name = entry.name
            if name.startswith(".") or name.lower() == "readme.md":
                continue
            rel = f"{relative}/{name}" if relative else name
            if entry.is_dir():
                self._scan(entry, rel, guides)
            elif entry.is_file() and name.endswith(".md"):
                guides.append(
                    GuideMetadata(
                        path=rel,
                        display_name=_title_words(name[: -len(".md")]),
                        category=self._category(rel),
                    )
                )

    @staticmethod
    def _category(relative_path: str) -> str:
        parts = relative_path.split("/")
        if len(parts) == 1:
            return "general"
        return _title_words(parts[0])


class GuideLoader:
    """Read guide bodies; bare names (``dialogue-tags``) get ``.md`` appended."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).expanduser().resolve()

    def _resolve(self, guide_path: str) -> Path:
        raw = guide_path.strip().replace("\\", "/")
        if "/" not in raw and not raw.endswith(".md"):
            raw = f"{raw}.md"
        candidate = (self.root / raw).resolve()
        try:
            candidate.relative_to(self.root)
        except ValueError as exc:
            raise PermissionError(f"guide path outside guides root: {guide_path}") from exc
        return candidate

    def load_guide(self, guide_path: str) -> str:
        resolved = self._resolve(guide_path)
        if not resolved.is_file():
            raise FileNotFoundError(f"Failed to load guide: {guide_path}")
        return resolved.read_text(encoding="utf-8")

    def load_guides(self, guide_paths: List[str]) -> str:
        return "\n\n---\n\n".join(self.load_guide(p) for p in guide_paths)
