"""Tests for registry parsing and lookup."""

from __future__ import annotations

import pytest

from ccc.courses.registry import (
    CourseRegistry,
    FileRegistryFetcher,
    StaticRegistryFetcher,
    parse_registry,
)
from ccc.engine.vcs import normalize_remote_url
from ccc.errors import CourseNotFound, RegistryUnavailable


class TestParseRegistry:
    def test_skips_comments_and_blank_lines(self):
        entries = parse_registry("# header\n\nfoo,https://x/foo.git,Foo,Fall,\n   \n")
        assert [e.course_id for e in entries] == ["foo"]

    def test_empty_base_image_means_default(self):
        (entry,) = parse_registry("foo,https://x/foo.git,Foo,Fall,")
        assert entry.base_image == "default"
        assert entry.uses_default_image

    def test_missing_trailing_fields(self):
        (entry,) = parse_registry("foo,https://x/foo.git")
        assert entry.display_name == ""
        assert entry.term == ""
        assert entry.base_image == "default"

    def test_extra_commas_stay_in_last_field(self):
        (entry,) = parse_registry("foo,u,Name,Term,img:1,extra")
        assert entry.base_image == "img:1,extra"

    def test_fields_are_stripped(self):
        (entry,) = parse_registry(" foo , u , Name , Term , postgres:16 ")
        assert entry.course_id == "foo"
        assert entry.repo_url == "u"
        assert entry.base_image == "postgres:16"

    def test_empty_text(self):
        assert parse_registry("") == []


class TestCourseRegistry:
    def test_lookup_exact(self, registry):
        entry = registry.lookup("csci-0300-demo")
        assert entry.display_name == "CSCI 0300 Demo"

    def test_lookup_is_exact_not_prefix(self, registry):
        with pytest.raises(CourseNotFound):
            registry.lookup("csci-0300")

    def test_not_found_lists_available(self, registry):
        with pytest.raises(CourseNotFound) as exc_info:
            registry.lookup("nope", hint="try something else")
        message = exc_info.value.format_message()
        assert "Course 'nope' not found in registry" in message
        assert "try something else" in message
        assert "Available courses:" in message
        assert "  csci-0300-demo" in message
        assert exc_info.value.exit_code == 3

    def test_not_found_on_empty_registry(self):
        registry = CourseRegistry(StaticRegistryFetcher(""))
        with pytest.raises(CourseNotFound) as exc_info:
            registry.lookup("anything")
        assert "(none)" in exc_info.value.format_message()

    def test_get_course_missing(self, registry):
        assert registry.get_course("nope") is None

    def test_course_ids_in_file_order(self, registry):
        assert registry.course_ids() == ["default", "csci-0300-demo", "db-course", "no-repo"]

    def test_find_by_url_normalizes_ssh(self, registry):
        entry = registry.find_by_url(
            "https://github.com/example/db-course.git", normalize=normalize_remote_url
        )
        assert entry is not None
        assert entry.course_id == "db-course"

    def test_find_by_url_ignores_entries_without_url(self, registry):
        assert registry.find_by_url("") is None

    def test_rereads_source(self):
        fetcher = StaticRegistryFetcher("a,u,,,")
        registry = CourseRegistry(fetcher)
        assert registry.course_ids() == ["a"]
        fetcher.text = "a,u,,,\nb,v,,,"
        assert registry.course_ids() == ["a", "b"]


class TestFileRegistryFetcher:
    def test_reads_file(self, registry_file):
        registry = CourseRegistry.from_file(registry_file)
        assert "db-course" in registry.course_ids()

    def test_missing_file(self, tmp_path):
        registry = CourseRegistry.from_file(tmp_path / "missing.csv")
        with pytest.raises(RegistryUnavailable):
            registry.list_courses()

    def test_bom_is_ignored(self, tmp_path):
        path = tmp_path / "registry.csv"
        path.write_bytes("\ufefffoo,u,,,\n".encode("utf-8"))
        assert FileRegistryFetcher(path).fetch().startswith("foo")

    def test_bundled_registry_parses(self):
        from ccc.config.settings import bundled_registry_file

        registry = CourseRegistry.from_file(bundled_registry_file())
        assert "default" in registry.course_ids()
