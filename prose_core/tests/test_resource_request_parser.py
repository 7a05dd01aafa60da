from prose_core.parsers import (
    extract_display_names,
    format_names_for_status,
    parse_context_request,
    parse_guide_request,
    strip_context_tags,
    strip_guide_tags,
)


def test_parse_single_tag_with_mixed_quotes():
    req = parse_guide_request("""Need these: <guide-request path=["a/one.md", 'two.md'] />""")
    assert req.present
    assert req.requested_ids == ["a/one.md", "two.md"]


def test_multiple_tags_are_merged_and_deduplicated():
    text = (
        '<guide-request path=["b.md", "a.md"] />\n'
        "some words\n"
        '<GUIDE-REQUEST path=["a.md", "c.md"]/>'
    )
    req = parse_guide_request(text)
    assert req.requested_ids == ["b.md", "a.md", "c.md"]


def test_malformed_tags_mean_no_request():
    assert not parse_guide_request('<guide-request path=["a.md" />').present
    assert not parse_guide_request("<guide-request path=[a.md] />").present
    assert not parse_guide_request('<guide-request path=[] />').present
    assert not parse_guide_request("").present


def test_grammars_are_independent():
    text = '<context-request path=["characters/anna.md"] />'
    assert not parse_guide_request(text).present
    assert parse_context_request(text).requested_ids == ["characters/anna.md"]


def test_strip_removes_tags_and_collapses_newlines():
    text = 'Intro\n\n<guide-request path=["a.md"] />\n\n\n\nFinal answer.  '
    stripped = strip_guide_tags(text)
    assert stripped == "Intro\n\nFinal answer."
    assert strip_guide_tags(stripped) == stripped


def test_strip_leaves_malformed_tag_text():
    text = 'Answer <context-request path=["a.md" />'
    assert strip_context_tags(text) == text.strip()


def test_display_names_for_status():
    ids = ["scene-example-guides/basketball-game.md", "dialogue-tags.md", "craft\\show-dont-tell.md"]
    assert extract_display_names(ids) == ["Basketball Game", "Dialogue Tags", "Show Dont Tell"]
    assert format_names_for_status(ids[:2]) == "Basketball Game, Dialogue Tags"
