import pytest

from tests.helpers import tree
from ugraft.errors import InvalidPrefixError, NoSubtreeAtPrefixError, PrefixConflictError
from ugraft.paths import (ancestors, check_prefix, has_subtree_at_prefix, parse_prefix, prefix_conflicts_with_file,
                          validate_prefix_exists, validate_prefix_for_add)


class TestParsePrefix:
    @pytest.mark.parametrize('text, expected', [
        ('lib', 'lib'),
        ('lib/', 'lib'),
        ('vendor/lib', 'vendor/lib'),
        ('vendor/lib/', 'vendor/lib'),
        ('.hidden/dir', '.hidden/dir'),
    ])
    def test_valid(self, text, expected) -> None:
        assert parse_prefix(text) == expected

    @pytest.mark.parametrize('text', [
        '', '.', '/', './', '/abs', '/abs/path', 'a//b', 'a/./b', 'a/../b', '..', 'lib//', '.ugraft', 'a/.ugraft/b',
    ])
    def test_invalid(self, text) -> None:
        with pytest.raises(InvalidPrefixError):
            parse_prefix(text)

    def test_root_error_mentions_subdirectory(self) -> None:
        with pytest.raises(InvalidPrefixError, match='subdirectory'):
            parse_prefix('.')

    def test_check_prefix_rejects_root(self) -> None:
        with pytest.raises(InvalidPrefixError):
            check_prefix('')


def test_ancestors() -> None:
    assert ancestors('a') == ['a']
    assert ancestors('a/b/c') == ['a', 'a/b', 'a/b/c']


class TestPrefixQueries:
    def test_no_conflict_when_missing(self, repo) -> None:
        assert prefix_conflicts_with_file(tree({'README': 'r'}), 'vendor/lib') is None

    def test_no_conflict_with_directory(self, repo) -> None:
        assert prefix_conflicts_with_file(tree({'vendor/lib/x': 'x'}), 'vendor/lib') is None

    def test_file_at_ancestor(self, repo) -> None:
        assert prefix_conflicts_with_file(tree({'vendor': 'file'}), 'vendor/lib') == 'vendor'

    def test_file_at_prefix(self, repo) -> None:
        assert prefix_conflicts_with_file(tree({'vendor/lib': 'file'}), 'vendor/lib') == 'vendor/lib'

    def test_validate_for_add(self, repo) -> None:
        with pytest.raises(PrefixConflictError) as excinfo:
            validate_prefix_for_add(tree({'vendor': 'file'}), 'vendor/lib')
        assert excinfo.value.path == 'vendor'

    def test_has_subtree(self, repo) -> None:
        t = tree({'vendor/lib/x': 'x', 'README': 'r'})

        assert has_subtree_at_prefix(t, 'vendor/lib')
        assert has_subtree_at_prefix(t, 'vendor')
        assert not has_subtree_at_prefix(t, 'lib')

    def test_validate_exists(self, repo) -> None:
        with pytest.raises(NoSubtreeAtPrefixError):
            validate_prefix_exists(tree({'README': 'r'}), 'lib')
