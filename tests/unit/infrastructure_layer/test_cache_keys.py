"""
Unit Tests for Cache Key Construction

Tests determinism, None handling and namespacing of cache keys.
"""

import pytest

from stampede_cache.core.config.constants import CacheKeyspace
from stampede_cache.infrastructure.cache.cache_keys import (
    build_cache_key,
    key_for_entity_by_id,
    key_for_entity_by_slug,
    key_for_paginated_list,
    key_for_public_list,
    lock_key,
    namespace_pattern,
)


@pytest.mark.unit
class TestBuildCacheKey:
    """Test the generic key builder."""

    def test_joins_params_with_delimiter(self):
        assert build_cache_key(CacheKeyspace.PAGINATED_LIST, 1, 10, "date") == "entity_pagination:1:10:date"

    def test_drops_none_params(self):
        assert build_cache_key(CacheKeyspace.PAGINATED_LIST, 1, None, "date") == "entity_pagination:1:date"

    def test_no_params_uses_default_suffix(self):
        assert build_cache_key(CacheKeyspace.PUBLIC_LIST) == "public_entities:default"

    def test_all_none_params_use_default_suffix(self):
        assert build_cache_key(CacheKeyspace.PUBLIC_LIST, None, None) == "public_entities:default"

    def test_accepts_plain_string_prefix(self):
        assert build_cache_key("custom", "a") == "custom:a"

    def test_falsy_values_other_than_none_are_kept(self):
        """0 and empty string are real parameter values."""
        assert build_cache_key("k", 0, "") == "k:0:"


@pytest.mark.unit
class TestKeyHelpers:
    """Test the per-resource key helpers."""

    def test_entity_by_id(self):
        assert key_for_entity_by_id(42) == "entity_id:42"

    def test_entity_by_slug(self):
        assert key_for_entity_by_slug("hello-world") == "entity_slug:hello-world"

    def test_id_and_slug_namespaces_differ(self):
        assert key_for_entity_by_id("42") != key_for_entity_by_slug("42")

    def test_public_list(self):
        assert key_for_public_list() == "public_entities:default"
        assert key_for_public_list(1, 10) == "public_entities:1:10"

    def test_lock_key(self):
        assert lock_key("fetch:entity_id:1") == "lock:fetch:entity_id:1"

    def test_namespace_pattern(self):
        assert namespace_pattern(CacheKeyspace.ENTITY_BY_ID) == "entity_id:*"
        assert namespace_pattern("custom") == "custom:*"


@pytest.mark.unit
class TestPaginatedListKeyDeterminism:
    """Same query shape → same key, different shape → different key."""

    def test_repeated_calls_are_identical(self):
        first = key_for_paginated_list(1, 10, "date", "desc", None)
        second = key_for_paginated_list(1, 10, "date", "desc", None)

        assert first == second
        assert first == "entity_pagination:1:10:date:desc"

    def test_omitted_and_explicit_none_collapse(self):
        assert key_for_paginated_list(1, 10) == key_for_paginated_list(1, 10, None, None, None)

    def test_keyword_and_positional_agree(self):
        assert key_for_paginated_list(page=2, limit=20, sort_by="title") == key_for_paginated_list(2, 20, "title")

    def test_all_omitted(self):
        assert key_for_paginated_list() == "entity_pagination:default"

    @pytest.mark.parametrize(
        "a,b",
        [
            ((1, 10), (2, 10)),
            ((1, 10), (1, 20)),
            ((1, 10, "date", "desc"), (1, 10, "date", "asc")),
            ((1, 10, "date", "desc", "foo"), (1, 10, "date", "desc", "bar")),
            ((1, 10, "date", "desc"), (1, 10, "date", "desc", "q")),
        ],
    )
    def test_distinct_queries_get_distinct_keys(self, a, b):
        assert key_for_paginated_list(*a) != key_for_paginated_list(*b)
