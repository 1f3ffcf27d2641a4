"""Tests for the SKILL.md frontmatter parser."""
from __future__ import annotations

import textwrap

import pytest
from skillsync_core.errors import DefinitionParseError
from skillsync_registry.parser import DefinitionParser, FrontmatterParser

_FULL_SKILL_MD = textwrap.dedent("""\
    ---
    name: pdf-tools
    description: Fill and merge PDF forms
    license: Apache-2.0
    metadata:
      author: example-org
      version: "1.2"
      tags: [pdf, forms]
    allowed-tools:
      - Read
      - Bash
    homepage: https://example.com/pdf-tools
    ---

    # PDF Tools

    Use pdftk to merge files.
""")


class TestParse:
    def test_full_frontmatter(self) -> None:
        parsed = FrontmatterParser().parse(_FULL_SKILL_MD.encode())
        meta = parsed.metadata

        assert meta.name == "pdf-tools"
        assert meta.description == "Fill and merge PDF forms"
        assert meta.license == "Apache-2.0"
        assert meta.author == "example-org"
        assert meta.version == "1.2"
        assert meta.allowed_tools == "Read, Bash"
        assert meta.extra == {
            "homepage": "https://example.com/pdf-tools",
            "metadata": {"tags": ["pdf", "forms"]},
        }
        assert parsed.body.startswith("# PDF Tools")
        assert parsed.body.endswith("merge files.")

    def test_leading_whitespace_allowed(self) -> None:
        raw = b"\n\n---\nname: x\ndescription: y\n---\nbody\n"
        parsed = FrontmatterParser().parse(raw)
        assert parsed.metadata.name == "x"
        assert parsed.body == "body"

    @pytest.mark.parametrize(
        ("raw", "fragment"),
        [
            (b"# just markdown\n", "no opening"),
            (b"---\nname: x\ndescription: y\n", "closing"),
            (b"---\ndescription: y\n---\n", "'name'"),
            (b"---\nname: [unclosed\n---\n", "Invalid YAML"),
            (b"---\n- a\n- b\n---\n", "mapping"),
            (b"\xff\xfe---", "UTF-8"),
        ],
    )
    def test_invalid_definitions(self, raw: bytes, fragment: str) -> None:
        with pytest.raises(DefinitionParseError, match=fragment):
            FrontmatterParser().parse(raw)


class TestSerialize:
    def test_reparse_keeps_unmodelled_keys(self) -> None:
        parser = FrontmatterParser()
        original = parser.parse(_FULL_SKILL_MD.encode())

        text = parser.serialize(original.metadata, original.body)
        again = parser.parse(text.encode())

        assert text.startswith("---\nname: pdf-tools\n")
        assert again.metadata == original.metadata
        assert again.body == original.body

    def test_satisfies_protocol(self) -> None:
        assert isinstance(FrontmatterParser(), DefinitionParser)
