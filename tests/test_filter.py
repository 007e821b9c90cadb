from tests.helpers import commit
from ugraft import base
from ugraft.filter import commit_touches_prefix, filter_by_prefix


def _touches(oid, prefix='lib'):
    return commit_touches_prefix(base.get_commit(oid), prefix)


def test_root_commit_with_content_touches(repo) -> None:
    assert _touches(commit({'lib/x': '1'}))


def test_root_commit_without_content_does_not_touch(repo) -> None:
    assert not _touches(commit({'README': 'r'}))


def test_change_outside_prefix(repo) -> None:
    c1 = commit({'lib/x': '1'}, message='c1')
    c2 = commit({'lib/x': '1', 'other/y': 'y'}, [c1], message='c2')

    assert not _touches(c2)


def test_change_inside_prefix(repo) -> None:
    c1 = commit({'lib/x': '1'}, message='c1')
    c2 = commit({'lib/x': '2'}, [c1], message='c2')

    assert _touches(c2)


def test_removing_the_prefix_touches(repo) -> None:
    c1 = commit({'lib/x': '1', 'README': 'r'}, message='c1')
    c2 = commit({'README': 'r'}, [c1], message='c2')

    assert _touches(c2)


def test_merge_touches_if_any_parent_differs(repo) -> None:
    root = commit({'lib/x': '0'}, message='root')
    touching = commit({'lib/x': '1'}, [root], message='touching')
    other = commit({'lib/x': '0', 'other/y': 'y'}, [root], message='other')
    merge = commit({'lib/x': '1', 'other/y': 'y'}, [touching, other], message='merge')

    assert _touches(merge)


def test_sibling_prefix_is_not_the_prefix(repo) -> None:
    c1 = commit({'lib/x': '1', 'library/y': '1'}, message='c1')
    c2 = commit({'lib/x': '1', 'library/y': '2'}, [c1], message='c2')

    assert not _touches(c2)


def test_filter_keeps_order_and_classifies(repo) -> None:
    c1 = commit({'lib/x': '1'}, message='c1')
    c2 = commit({'lib/x': '1', 'other/y': 'y'}, [c1], message='c2')
    c3 = commit({'lib/x': '2', 'other/y': 'y'}, [c2], message='c3')

    result = filter_by_prefix([c1, c2, c3], 'lib')

    assert [(item.oid, item.touches) for item in result] == [(c1, True), (c2, False), (c3, True)]
    assert result[1].commit == base.get_commit(c2)


def test_parallel_classification_matches_serial(repo) -> None:
    oids = []
    parents = []
    for i in range(12):
        files = {'lib/x': str(i // 2), 'other/y': str(i)}
        oid = commit(files, parents, message=f'c{i}')
        oids.append(oid)
        parents = [oid]

    assert filter_by_prefix(oids, 'lib', jobs=4) == filter_by_prefix(oids, 'lib', jobs=1)
