"""SKILL.md parser: extracts YAML frontmatter and the markdown body."""
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import yaml
from skillsync_core.errors import DefinitionParseError

from skillsync_registry.types import ParsedDefinition, SkillMetadata

_MODELLED_KEYS = frozenset({"name", "description", "license", "metadata", "allowed-tools"})


@runtime_checkable
class DefinitionParser(Protocol):
    """Converts raw SKILL.md bytes to metadata + body and back."""

    def parse(self, raw: bytes) -> ParsedDefinition: ...
    def serialize(self, metadata: SkillMetadata, body: str) -> str: ...


class FrontmatterParser:
    """Default :class:`DefinitionParser` backed by PyYAML.

    The file format is YAML frontmatter delimited by ``---`` lines, followed
    by a markdown body.  ``name`` and ``description`` are required; ``author``
    and ``version`` live under a nested ``metadata`` mapping.
    """

    def parse(self, raw: bytes) -> ParsedDefinition:
        """Parse SKILL.md content.

        Raises:
            DefinitionParseError: If the bytes are not UTF-8, the frontmatter
                is missing or malformed, or a required field is absent.
        """
        try:
            text = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            msg = f"SKILL.md is not valid UTF-8: {exc}"
            raise DefinitionParseError(msg) from exc

        frontmatter, body = _split_frontmatter(text)
        meta = _parse_yaml(frontmatter)

        for key in ("name", "description"):
            if key not in meta or meta[key] is None:
                msg = f"SKILL.md missing required field '{key}'"
                raise DefinitionParseError(msg)

        extra = {k: v for k, v in meta.items() if k not in _MODELLED_KEYS}
        author: str | None = None
        version: str | None = None
        nested = meta.get("metadata")
        if isinstance(nested, dict):
            author = _opt_str(nested.get("author"))
            version = _opt_str(nested.get("version"))
            rest = {k: v for k, v in nested.items() if k not in ("author", "version")}
            if rest:
                extra["metadata"] = rest
        elif nested is not None:
            extra["metadata"] = nested

        return ParsedDefinition(
            metadata=SkillMetadata(
                name=str(meta["name"]),
                description=str(meta["description"]),
                license=_opt_str(meta.get("license")),
                author=author,
                version=version,
                allowed_tools=_opt_str(meta.get("allowed-tools")),
                extra=extra,
            ),
            body=body.strip(),
        )

    def serialize(self, metadata: SkillMetadata, body: str) -> str:
        """Render metadata and body back into SKILL.md text."""
        data: dict[str, Any] = {
            "name": metadata.name,
            "description": metadata.description,
        }
        if metadata.license is not None:
            data["license"] = metadata.license

        nested = metadata.extra.get("metadata")
        if isinstance(nested, dict) or metadata.author or metadata.version:
            block = dict(nested) if isinstance(nested, dict) else {}
            if metadata.author is not None:
                block["author"] = metadata.author
            if metadata.version is not None:
                block["version"] = metadata.version
            data["metadata"] = block
        elif nested is not None:
            data["metadata"] = nested

        if metadata.allowed_tools is not None:
            data["allowed-tools"] = metadata.allowed_tools
        for key, value in metadata.extra.items():
            if key != "metadata":
                data[key] = value

        frontmatter = yaml.safe_dump(
            data, sort_keys=False, allow_unicode=True, default_flow_style=False
        )
        return f"---\n{frontmatter.strip()}\n---\n\n{body.strip()}\n"


def _split_frontmatter(text: str) -> tuple[str, str]:
    """Split text into YAML frontmatter and markdown body.

    Returns:
        A (frontmatter, body) tuple.
    """
    stripped = text.strip()
    if not stripped.startswith("---"):
        msg = "SKILL.md missing YAML frontmatter (no opening '---')"
        raise DefinitionParseError(msg)

    rest = stripped[3:]
    closing_idx = rest.find("\n---")
    if closing_idx == -1:
        msg = "SKILL.md missing closing '---' for frontmatter"
        raise DefinitionParseError(msg)

    frontmatter = rest[:closing_idx]
    body = rest[closing_idx + 4 :]  # skip past "\n---"
    return frontmatter, body


def _parse_yaml(frontmatter: str) -> dict[str, Any]:
    try:
        result = yaml.safe_load(frontmatter)
    except yaml.YAMLError as exc:
        msg = f"Invalid YAML frontmatter: {exc}"
        raise DefinitionParseError(msg) from exc

    if not isinstance(result, dict):
        msg = f"YAML frontmatter must be a mapping, got {type(result).__name__}"
        raise DefinitionParseError(msg)

    return result


def _opt_str(value: Any) -> str | None:
    """Coerce scalars to str, join lists, pass None through."""
    if value is None:
        return None
    if isinstance(value, list):
        return ", ".join(str(item) for item in value)
    return str(value)
