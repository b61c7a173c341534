"""Tests for Markdown section extraction."""
from chainlens.knowledge_base.extractors.markdown import extract_markdown_sections

DOC = """Intro text.
# Title
Body one.
## Setup
Setup body.
```bash
# not a heading
```
### Deep
Deep body.
## Next ##
Next body.
"""


def test_sections_and_breadcrumbs():
    units = extract_markdown_sections(DOC, "README.md")

    assert [(u.heading, u.content) for u in units] == [
        ("README.md", "Intro text."),
        ("Title", "Body one."),
        ("Title > Setup", "Setup body.\n```bash\n# not a heading\n```"),
        ("Title > Setup > Deep", "Deep body."),
        ("Title > Next", "Next body."),
    ]
    assert all(u.file_path == "README.md" for u in units)


def test_empty_sections_are_dropped():
    units = extract_markdown_sections("# A\n\n## B\ntext\n", "docs/a.md")

    assert [(u.heading, u.content) for u in units] == [("A > B", "text")]


def test_five_hashes_is_not_a_heading():
    units = extract_markdown_sections("##### small\nbody", "x.md")

    assert len(units) == 1
    assert units[0].heading == "x.md"
    assert units[0].content == "##### small\nbody"
