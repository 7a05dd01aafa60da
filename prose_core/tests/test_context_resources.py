import tempfile
from pathlib import Path

from prose_core.resources.context import LocalContextResourceProvider, format_catalog_for_prompt


PATTERNS = {
    "characters": ["characters/**/*.md"],
    "general": ["**/*.md"],
}


def _make_project(root: Path):
    (root / "characters").mkdir()
    (root / "characters" / "anna-kovac.md").write_text("Anna is a pilot.", encoding="utf-8")
    (root / "notes.md").write_text("General notes.", encoding="utf-8")
    (root / "node_modules" / "pkg").mkdir(parents=True)
    (root / "node_modules" / "pkg" / "README.md").write_text("vendored", encoding="utf-8")


def test_list_resources_groups_and_dedupes():
    with tempfile.TemporaryDirectory() as d:
        root = Path(d)
        _make_project(root)
        provider = LocalContextResourceProvider(root, PATTERNS)
        summaries = provider.list_resources()

    assert [(s.group, s.path) for s in summaries] == [
        ("characters", "characters/anna-kovac.md"),
        ("general", "notes.md"),
    ]
    assert summaries[0].label == "anna kovac"


def test_load_resources_skips_unknown_paths():
    with tempfile.TemporaryDirectory() as d:
        root = Path(d)
        _make_project(root)
        provider = LocalContextResourceProvider(root, PATTERNS)
        loaded = provider.load_resources(["./Characters/Anna-Kovac.md", "missing.md"])

    assert [r.path for r in loaded] == ["characters/anna-kovac.md"]
    assert loaded[0].content == "Anna is a pilot."
    assert loaded[0].group == "characters"


def test_catalog_format():
    with tempfile.TemporaryDirectory() as d:
        root = Path(d)
        _make_project(root)
        text = format_catalog_for_prompt(LocalContextResourceProvider(root, PATTERNS).list_resources())
    assert "### characters" in text
    assert "- `characters/anna-kovac.md` - anna kovac" in text
    assert format_catalog_for_prompt([]).endswith("No project resources available.")
