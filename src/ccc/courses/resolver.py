"""Map courses to the image and container they run in."""

from __future__ import annotations

from dataclasses import dataclass

from ccc.config.settings import Settings
from ccc.courses.registry import DEFAULT_BASE_IMAGE, DEFAULT_COURSE, CourseRegistry


@dataclass(frozen=True)
class ContainerIdentity:
    image_name: str
    container_name: str
    base_image: str  # what image_name is built FROM


def normalize_base_image(base_image: str) -> str:
    return base_image.replace(":", "-")


def container_identity(base_image: str, prefix: str, default_base_image: str) -> ContainerIdentity:
    """Courses sharing a base image share one image and one container."""
    if base_image in ("", DEFAULT_BASE_IMAGE):
        return ContainerIdentity(
            image_name=prefix,
            container_name=f"{prefix}-default",
            base_image=default_base_image,
        )
    normalized = normalize_base_image(base_image)
    return ContainerIdentity(
        image_name=f"{prefix}:{normalized}",
        container_name=f"{prefix}-{normalized}",
        base_image=base_image,
    )


class CourseResolver:
    def __init__(self, registry: CourseRegistry, settings: Settings):
        self.registry = registry
        self.settings = settings

    def default_identity(self) -> ContainerIdentity:
        return container_identity(
            DEFAULT_BASE_IMAGE, self.settings.image_prefix, self.settings.default_base_image
        )

    def resolve(self, course_id: str) -> ContainerIdentity:
        if course_id == DEFAULT_COURSE:
            return self.default_identity()
        entry = self.registry.lookup(course_id)
        return container_identity(
            entry.base_image, self.settings.image_prefix, self.settings.default_base_image
        )

    def identities(self) -> list[ContainerIdentity]:
        """Every distinct identity the registry can produce, default first."""
        seen = [self.default_identity()]
        for entry in self.registry.list_courses():
            identity = container_identity(
                entry.base_image, self.settings.image_prefix, self.settings.default_base_image
            )
            if identity not in seen:
                seen.append(identity)
        return seen
