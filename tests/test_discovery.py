"""Tests for manifest-based unit discovery."""

import json

import pytest

from skipwise.discovery import ManifestDiscovery, StaticDiscovery
from skipwise.exceptions import InvalidConfigError
from skipwise.model import CompiledUnitId, UnitLocation


class TestManifestDiscovery:
    """Test ManifestDiscovery."""

    def test_relative_paths(self, tmp_path):
        """Paths are resolved against the manifest's directory."""
        manifest = tmp_path / "build" / "units.json"
        manifest.parent.mkdir()
        manifest.write_text(
            json.dumps(
                [{"unit": "com/example/Foo", "source": "../src/Foo.java", "compiled": "Foo.class"}]
            )
        )
        (location,) = ManifestDiscovery(manifest).discover()
        assert location.unit_id == CompiledUnitId("com.example.Foo")
        assert location.source_path == tmp_path / "build" / ".." / "src" / "Foo.java"
        assert location.compiled_path == tmp_path / "build" / "Foo.class"

    def test_absolute_paths(self, tmp_path):
        """Absolute paths are taken as they are."""
        manifest = tmp_path / "units.json"
        source = tmp_path / "elsewhere" / "Foo.java"
        manifest.write_text(
            json.dumps([{"unit": "Foo", "source": str(source), "compiled": "Foo.class"}])
        )
        assert ManifestDiscovery(manifest).discover()[0].source_path == source

    @pytest.mark.parametrize(
        "content",
        [
            "not json",
            '{"unit": "Foo"}',
            '[{"unit": "Foo"}]',
            '[{"unit": "", "source": "a", "compiled": "b"}]',
        ],
    )
    def test_malformed_manifest(self, tmp_path, content):
        """Malformed manifests are configuration errors."""
        manifest = tmp_path / "units.json"
        manifest.write_text(content)
        with pytest.raises(InvalidConfigError):
            ManifestDiscovery(manifest).discover()

    def test_missing_manifest(self, tmp_path):
        """A missing manifest is a configuration error."""
        with pytest.raises(InvalidConfigError):
            ManifestDiscovery(tmp_path / "units.json").discover()


class TestStaticDiscovery:
    """Test StaticDiscovery."""

    def test_returns_copy(self, tmp_path):
        """Callers cannot mutate the configured list."""
        location = UnitLocation(CompiledUnitId("Foo"), tmp_path / "Foo.java", tmp_path / "Foo.class")
        discovery = StaticDiscovery([location])
        discovery.discover().clear()
        assert discovery.discover() == [location]
