"""Waiting-page themes rendered from Jinja2 templates."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Iterator, Mapping

import humanize
import jinja2

logger = logging.getLogger(__name__)

TEMPLATE_SUFFIX = ".html"


class ThemeNotFoundError(LookupError):
    """The requested theme is not loaded."""


@dataclass(frozen=True)
class Instance:
    """The state of one instance as shown on a waiting page."""

    name: str
    status: str = ""
    error: BaseException | None = None
    current_replicas: int = 0
    desired_replicas: int = 0


@dataclass
class Options:
    """What the caller may customise on a rendered page.

    Durations are in seconds.
    """

    display_name: str = ""
    show_details: bool = False
    instance_states: list[Instance] = field(default_factory=list)
    session_duration: float = 0.0
    refresh_frequency: float = 0.0


def _walk_files(directory: Path) -> Iterator[Path]:
    """Yield files below ``directory`` in lexical order, depth first."""
    with os.scandir(directory) as entries:
        ordered = sorted(entries, key=lambda entry: entry.name)
    for entry in ordered:
        path = Path(entry.path)
        if entry.is_dir():
            yield from _walk_files(path)
        else:
            yield path


def parse_templates(path: str | os.PathLike[str]) -> dict[str, str]:
    """Read every template below ``path`` whose path contains ``.html``.

    Templates are keyed by file name; a later file replaces an earlier one
    with the same name.
    """
    root = Path(path)
    templates: dict[str, str] = {}
    for file in _walk_files(root):
        relative = file.relative_to(root).as_posix()
        if TEMPLATE_SUFFIX in relative:
            logger.debug("found template %s", relative)
            templates[file.name] = file.read_text(encoding="utf-8")
            logger.debug("successfully added template %s", relative)
    return templates


class Themes:
    """A set of named templates that render waiting pages."""

    def __init__(self, templates: Mapping[str, str] | None = None) -> None:
        self._templates = dict(templates or {})
        self._env = jinja2.Environment(
            loader=jinja2.DictLoader(self._templates),
            autoescape=True,
        )
        # Compile everything up front so syntax errors surface at load time.
        for name in self._templates:
            self._env.get_template(name)

    @classmethod
    def from_directory(cls, path: str | os.PathLike[str]) -> "Themes":
        """Load all templates found below ``path``."""
        return cls(parse_templates(path))

    def list(self) -> list[str]:
        """Return the names of the loaded themes."""
        return [
            name[: -len(TEMPLATE_SUFFIX)]
            for name in self._templates
            if name.endswith(TEMPLATE_SUFFIX)
        ]

    def render(self, name: str, options: Options, version: str = "") -> str:
        """Render the theme ``name`` with ``options``."""
        template_name = f"{name}{TEMPLATE_SUFFIX}"
        if template_name not in self._templates:
            raise ThemeNotFoundError(f"theme {name} does not exist")
        template = self._env.get_template(template_name)
        instances = list(options.instance_states) if options.show_details else []
        return template.render(
            display_name=options.display_name,
            instance_states=instances,
            session_duration=humanize.precisedelta(timedelta(seconds=options.session_duration)),
            refresh_frequency=str(int(options.refresh_frequency)),
            version=version,
        )