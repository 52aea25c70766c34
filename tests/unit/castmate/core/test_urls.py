"""Unit tests for ObjectURLRegistry."""

from castmate.core.models import MediaBlob
from castmate.core.urls import URL_SCHEME, ObjectURLRegistry


class TestObjectURLRegistry:
    """Test cases for ObjectURLRegistry."""

    def test_create_and_resolve(self):
        registry = ObjectURLRegistry()
        blob = MediaBlob(b"data", "video/webm")

        url = registry.create(blob)

        assert url.startswith(URL_SCHEME)
        assert url in registry
        assert registry.resolve(url) is blob

    def test_urls_are_unique(self):
        registry = ObjectURLRegistry()
        blob = MediaBlob(b"data", "video/webm")
        assert registry.create(blob) != registry.create(blob)
        assert len(registry) == 2

    def test_revoke(self):
        registry = ObjectURLRegistry()
        url = registry.create(MediaBlob(b"data", "video/webm"))

        registry.revoke(url)

        assert url not in registry
        assert registry.resolve(url) is None

    def test_revoke_unknown_or_none_is_ignored(self):
        registry = ObjectURLRegistry()
        registry.revoke(None)
        registry.revoke("blob:castmate/unknown")
        assert len(registry) == 0
