import shutil

import pytest

from tests.helpers import SIGNATURE, blob, commit, commit_files, files_of, tree
from ugraft import base, diff, metadata
from ugraft.errors import PrefixConflictError
from ugraft.merge import find_base_tree, merge_into_prefix
from ugraft.split import split
from ugraft.types import ConflictSide, SubtreeMetadata

needs_diff3 = pytest.mark.skipif(shutil.which('diff3') is None, reason='diff3 is not installed')


def _merge(current_head, incoming, prefix='lib', **kwargs):
    kwargs.setdefault('message', 'Merge')
    return merge_into_prefix(current_head, incoming, prefix, signature=SIGNATURE, **kwargs)


@pytest.fixture
def added(repo):
    """A host history with `lib` added from a standalone library history."""
    host = commit({'README': 'host'}, message='host')
    library = commit({'x': '1\n2\n3\n', 'd/y': 'y\n'}, message='library')
    result = _merge(host, library, subtree_metadata=SubtreeMetadata(mainline=host, split=library))
    return host, library, result.commit


class TestAdd:
    def test_add_into_empty_prefix_has_no_conflicts(self, added) -> None:
        host, library, merged = added

        assert commit_files(merged) == {'README': 'host', 'lib/x': '1\n2\n3\n', 'lib/d/y': 'y\n'}
        assert base.get_commit(merged).parents == [host, library]

    def test_trailers(self, added) -> None:
        host, library, merged = added

        assert metadata.parse(base.get_commit(merged).message) == \
            SubtreeMetadata(dir='lib', mainline=host, split=library)

    def test_base_is_empty_without_shared_history(self, repo) -> None:
        host = commit({'README': 'host'}, message='host')
        library = commit({'x': '1'}, message='library')

        assert find_base_tree(host, library, 'lib') == base.empty_tree()

    def test_add_of_a_commit_sharing_history_with_head(self, repo) -> None:
        root = commit({'a': '1'}, message='root')
        head = commit({'a': '2'}, [root], message='head')
        incoming = commit({'a': '3', 'b': 'b'}, [root], message='incoming')

        result = _merge(head, incoming)

        assert result.conflicts == []
        assert commit_files(result.commit) == {'a': '2', 'lib/a': '3', 'lib/b': 'b'}

    def test_host_history_is_not_a_base_for_root_relative_commits(self, repo) -> None:
        root = commit({'a': '1', 'lib/x': '1'}, message='root')
        head = commit({'a': '2', 'lib/x': '1'}, [root], message='head')
        incoming = commit({'x': '2'}, [root], message='incoming')

        assert find_base_tree(head, incoming, 'lib') == base.empty_tree()

    def test_prefix_blocked_by_file(self, repo) -> None:
        host = commit({'lib': 'a file'}, message='host')
        library = commit({'x': '1'}, message='library')

        with pytest.raises(PrefixConflictError):
            _merge(host, library)

    def test_legacy_trailers(self, repo) -> None:
        host = commit({'README': 'host'}, message='host')
        library = commit({'x': '1'}, message='library')

        result = _merge(host, library, subtree_metadata=SubtreeMetadata(split=library), legacy_trailers=True)

        assert f'git-subtree-split: {library}' in base.get_commit(result.commit).message
        assert 'git-subtree-dir: lib' in base.get_commit(result.commit).message


class TestMerge:
    def test_upstream_change(self, added) -> None:
        _, library, merged = added
        library2 = commit({'x': '1\n2\n3\n4\n', 'd/y': 'y\n'}, [library], message='library 2')

        result = _merge(merged, library2)

        assert result.conflicts == []
        assert commit_files(result.commit)['lib/x'] == '1\n2\n3\n4\n'

    def test_changes_on_both_sides_to_different_files(self, added) -> None:
        _, library, merged = added
        local = commit({'README': 'host', 'lib/x': '1\n2\n3\n', 'lib/d/y': 'local\n'}, [merged], message='local')
        library2 = commit({'x': 'upstream\n', 'd/y': 'y\n'}, [library], message='library 2')

        result = _merge(local, library2)

        assert result.conflicts == []
        assert commit_files(result.commit) == {'README': 'host', 'lib/x': 'upstream\n', 'lib/d/y': 'local\n'}

    def test_content_outside_the_prefix_is_untouched(self, added) -> None:
        _, library, merged = added
        local = commit({'README': 'changed', 'lib/x': '1\n2\n3\n', 'lib/d/y': 'y\n', 'src/a': 'a'}, [merged],
                       message='local')
        library2 = commit({'x': '1\n2\n3\n', 'd/y': 'y\n', 'README': 'library readme'}, [library],
                          message='library 2')

        result = _merge(local, library2)

        files = commit_files(result.commit)
        assert files['README'] == 'changed'
        assert files['src/a'] == 'a'
        assert files['lib/README'] == 'library readme'

    def test_modify_delete_is_a_conflict(self, added) -> None:
        _, library, merged = added
        local = commit({'README': 'host', 'lib/d/y': 'y\n'}, [merged], message='delete x')
        library2 = commit({'x': 'changed\n', 'd/y': 'y\n'}, [library], message='library 2')

        result = _merge(local, library2)

        assert result.conflicts == ['lib/x']
        entry = base.get_tree(result.tree)['lib/x']
        assert entry.type_ == 'conflict'
        sides = dict(diff.get_conflict(entry.oid))
        assert sides['base'] == blob('1\n2\n3\n')
        assert sides['ours'] is None
        assert sides['theirs'] == blob('changed\n')
        assert base.get_commit(result.commit).tree == result.tree

    def test_file_against_directory_is_a_conflict(self, added) -> None:
        _, library, merged = added
        local = commit({'README': 'host', 'lib/x': '1\n2\n3\n', 'lib/d/y': 'y\n', 'lib/e': 'file\n'}, [merged],
                       message='local adds file e')
        library2 = commit({'x': '1\n2\n3\n', 'd/y': 'y\n', 'e/z': 'z\n'}, [library], message='library adds e/z')

        result = _merge(local, library2)

        assert result.conflicts == ['lib/e']
        sides = dict(diff.get_conflict(base.get_tree(result.tree)['lib/e'].oid))
        assert sides['ours'] == blob('file\n')
        assert sides['theirs'] is None
        assert files_of(result.tree) == {'README': 'host', 'lib/x': '1\n2\n3\n', 'lib/d/y': 'y\n',
                                         'lib/e~theirs/z': 'z\n'}

    @needs_diff3
    def test_overlapping_edits_are_a_conflict(self, added) -> None:
        _, library, merged = added
        local = commit({'README': 'host', 'lib/x': '1\nours\n3\n', 'lib/d/y': 'y\n'}, [merged], message='local')
        library2 = commit({'x': '1\ntheirs\n3\n', 'd/y': 'y\n'}, [library], message='library 2')

        result = _merge(local, library2)

        assert result.conflicts == ['lib/x']

    @needs_diff3
    def test_non_overlapping_edits_merge_cleanly(self, added) -> None:
        _, library, merged = added
        local = commit({'README': 'host', 'lib/x': 'one\n2\n3\n', 'lib/d/y': 'y\n'}, [merged], message='local')
        library2 = commit({'x': '1\n2\nthree\n', 'd/y': 'y\n'}, [library], message='library 2')

        result = _merge(local, library2)

        assert result.conflicts == []
        assert commit_files(result.commit)['lib/x'] == 'one\n2\nthree\n'

    def test_base_from_mainline_link(self, repo) -> None:
        local1 = commit({'README': 'host', 'lib/x': '1\n'}, message='local 1')
        extracted = split(local1, 'lib', empty_commits='skip')
        upstream = commit({'x': '2\n'}, [extracted.head], message='upstream changes x')
        local2 = commit({'README': 'host', 'lib/x': '1\n', 'lib/y': 'y\n'}, [local1], message='local adds y')

        assert find_base_tree(local2, upstream, 'lib') == base.get_commit(extracted.head).tree

        result = _merge(local2, upstream, subtree_metadata=SubtreeMetadata(split=upstream))

        assert result.conflicts == []
        assert commit_files(result.commit) == {'README': 'host', 'lib/x': '2\n', 'lib/y': 'y\n'}


def test_merge_prefixed_commit(repo) -> None:
    root = commit({'README': 'r', 'lib/x': '1'}, message='root')
    feature = commit({'README': 'feature', 'lib/x': '2'}, [root], message='feature')
    main = commit({'README': 'main', 'lib/x': '1', 'other': 'o'}, [root], message='main')

    result = merge_into_prefix(main, feature, 'lib', message='Merge lib from feature', incoming_prefixed=True,
                               signature=SIGNATURE)

    assert files_of(result.tree) == {'README': 'main', 'lib/x': '2', 'other': 'o'}


def test_merge_trees_takes_one_sided_changes(repo) -> None:
    t_base = base.get_tree(tree({'a': '1', 'b': '1'}))
    t_ours = base.get_tree(tree({'a': '2', 'b': '1'}))
    t_theirs = base.get_tree(tree({'a': '1', 'c': '1'}))

    merged = diff.merge_trees(t_base, t_ours, t_theirs)

    assert merged == {'a': blob('2'), 'c': blob('1')}


def test_merge_trees_moves_a_colliding_directory_aside(repo) -> None:
    t_base = base.get_tree(tree({'a': '1'}))
    t_ours = base.get_tree(tree({'a': '1', 'd/x': 'x', 'd/y': 'y'}))
    t_theirs = base.get_tree(tree({'a': '1', 'd': 'file'}))

    merged = diff.merge_trees(t_base, t_ours, t_theirs)

    assert diff.file_directory_collisions(merged) == []
    assert set(merged) == {'a', 'd', 'd~ours/x', 'd~ours/y'}
    assert merged['d'].type_ == 'conflict'
    assert dict(diff.get_conflict(merged['d'].oid))['theirs'] == blob('file')


def test_render_conflict(repo) -> None:
    sides = [ConflictSide('base', blob('b\n')), ConflictSide('ours', None), ConflictSide('theirs', blob('t'))]

    assert diff.render_conflict(sides) == b'<<<<<<< ours\n||||||| base\nb\n=======\nt\n>>>>>>> theirs\n'
