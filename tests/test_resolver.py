"""Tests for mapping courses to images and containers."""

from __future__ import annotations

import pytest

from ccc.config.settings import Settings
from ccc.courses.registry import CourseRegistry, StaticRegistryFetcher
from ccc.courses.resolver import CourseResolver, container_identity, normalize_base_image
from ccc.errors import CourseNotFound


def test_normalize_base_image():
    assert normalize_base_image("postgres:16") == "postgres-16"
    assert normalize_base_image("ubuntu") == "ubuntu"


class TestContainerIdentity:
    def test_default(self):
        identity = container_identity("default", "ccc", "ubuntu:noble")
        assert identity.image_name == "ccc"
        assert identity.container_name == "ccc-default"
        assert identity.base_image == "ubuntu:noble"

    def test_empty_is_default(self):
        assert container_identity("", "ccc", "ubuntu:noble") == container_identity(
            "default", "ccc", "ubuntu:noble"
        )

    def test_custom_base(self):
        identity = container_identity("postgres:16", "ccc", "ubuntu:noble")
        assert identity.image_name == "ccc:postgres-16"
        assert identity.container_name == "ccc-postgres-16"
        assert identity.base_image == "postgres:16"

    def test_prefix(self):
        identity = container_identity("postgres:16", "my-ccc", "ubuntu:noble")
        assert identity.image_name == "my-ccc:postgres-16"


class TestCourseResolver:
    def test_resolve_is_pure(self, resolver):
        assert resolver.resolve("db-course") == resolver.resolve("db-course")

    def test_default_base_courses_share_identity(self, resolver):
        assert resolver.resolve("csci-0300-demo") == resolver.resolve("default")
        assert resolver.resolve("no-repo") == resolver.resolve("default")

    def test_db_course_scenario(self, resolver):
        demo = resolver.resolve("csci-0300-demo")
        db = resolver.resolve("db-course")
        assert demo.image_name == "ccc"
        assert db.image_name == "ccc:postgres-16"
        assert db.container_name == "ccc-postgres-16"
        assert demo != db

    def test_default_bypasses_registry(self, settings):
        resolver = CourseResolver(CourseRegistry(StaticRegistryFetcher("")), settings)
        assert resolver.resolve("default").image_name == "ccc"

    def test_unknown_course(self, resolver):
        with pytest.raises(CourseNotFound):
            resolver.resolve("nope")

    def test_identities_are_distinct_default_first(self, resolver):
        identities = resolver.identities()
        assert [i.image_name for i in identities] == ["ccc", "ccc:postgres-16"]

    def test_uses_settings(self, registry, registry_file):
        settings = Settings(registry_file=registry_file, image_prefix="x", default_base_image="ubuntu:jammy")
        identity = CourseResolver(registry, settings).resolve("default")
        assert identity.image_name == "x"
        assert identity.container_name == "x-default"
        assert identity.base_image == "ubuntu:jammy"
