"""Course registry: a flat CSV of known courses."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Protocol

from ccc.errors import CourseNotFound, RegistryUnavailable

logger = logging.getLogger(__name__)

DEFAULT_COURSE = "default"
DEFAULT_BASE_IMAGE = "default"

FIELD_COUNT = 5


@dataclass(frozen=True)
class RegistryEntry:
    course_id: str
    repo_url: str
    display_name: str = ""
    term: str = ""
    base_image: str = DEFAULT_BASE_IMAGE

    @property
    def uses_default_image(self) -> bool:
        return self.base_image in ("", DEFAULT_BASE_IMAGE)


def parse_registry(text: str) -> list[RegistryEntry]:
    """Parse ``id,url,name,term[,base_image]`` rows.

    No quoting is supported. Missing trailing fields are empty and any extra
    commas stay in the last field.
    """
    entries: list[RegistryEntry] = []
    for line in text.splitlines():
        parts = [p.strip() for p in line.split(",", FIELD_COUNT - 1)]
        course_id = parts[0]
        if not course_id or course_id.startswith("#"):
            continue
        parts += [""] * (FIELD_COUNT - len(parts))
        entries.append(RegistryEntry(
            course_id=course_id,
            repo_url=parts[1],
            display_name=parts[2],
            term=parts[3],
            base_image=parts[4] or DEFAULT_BASE_IMAGE,
        ))
    return entries


class RegistryFetcher(Protocol):
    def fetch(self) -> str:
        """Return the full registry text."""
        ...


class FileRegistryFetcher:
    def __init__(self, path: Path):
        self.path = Path(path)

    def fetch(self) -> str:
        if not self.path.is_file():
            raise RegistryUnavailable(f"Registry file not found: {self.path}")
        return self.path.read_text(encoding="utf-8-sig")


class StaticRegistryFetcher:
    """Registry held in memory."""

    def __init__(self, text: str = ""):
        self.text = text

    def fetch(self) -> str:
        return self.text


class CourseRegistry:
    """Looks courses up in the registry, re-reading the source every time."""

    def __init__(self, fetcher: RegistryFetcher):
        self.fetcher = fetcher

    @classmethod
    def from_file(cls, path: Path) -> "CourseRegistry":
        logger.debug("using registry file %s", path)
        return cls(FileRegistryFetcher(path))

    def list_courses(self) -> list[RegistryEntry]:
        return parse_registry(self.fetcher.fetch())

    def course_ids(self) -> list[str]:
        return [entry.course_id for entry in self.list_courses()]

    def get_course(self, course_id: str) -> Optional[RegistryEntry]:
        for entry in self.list_courses():
            if entry.course_id == course_id:
                return entry
        return None

    def lookup(self, course_id: str, hint: str = "") -> RegistryEntry:
        entries = self.list_courses()
        for entry in entries:
            if entry.course_id == course_id:
                return entry
        raise CourseNotFound(course_id, [e.course_id for e in entries], hint=hint)

    def find_by_url(
        self, repo_url: str, normalize: Optional[Callable[[str], str]] = None
    ) -> Optional[RegistryEntry]:
        for entry in self.list_courses():
            if not entry.repo_url:
                continue
            candidate = normalize(entry.repo_url) if normalize else entry.repo_url
            if candidate == repo_url:
                return entry
        return None
