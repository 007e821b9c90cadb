import argparse
import logging
import os
import sys
import textwrap

from . import data
from . import base
from . import subtree
from .config import load_config
from .errors import BackendError, UgraftError
from .paths import parse_prefix


def main(argv=None):
    with data.change_git_dir('.'):
        try:
            args = parse_args(argv)
            _configure_logging(args)
            if args.command != 'init' and not data.is_repository('.'):
                raise UgraftError(f'Not a ugraft repository: {os.getcwd()}')
            return args.func(args) or 0
        except UgraftError as e:
            print(f'error: {e}', file=sys.stderr)
            if isinstance(e, BackendError):
                print(f'hint: {e.hint}', file=sys.stderr)
            return 1


def _configure_logging(args):
    level = logging.DEBUG if args.verbose else logging.WARNING if args.quiet else logging.INFO
    logging.basicConfig(level=level, format='%(levelname)s %(name)s: %(message)s')


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog='ugraft')
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument('-v', '--verbose', action='store_true')
    verbosity.add_argument('-q', '--quiet', action='store_true')
    commands = parser.add_subparsers(dest='command')
    commands.required = True

    init_parser = commands.add_parser('init')
    init_parser.set_defaults(func=init)

    commit_parser = commands.add_parser('commit')
    commit_parser.set_defaults(func=commit)
    commit_parser.add_argument('-m', '--message', required=True)

    log_parser = commands.add_parser('log')
    log_parser.set_defaults(func=log)
    log_parser.add_argument('oid', default='@', nargs='?')

    checkout_parser = commands.add_parser('checkout')
    checkout_parser.set_defaults(func=checkout)
    checkout_parser.add_argument('name')

    subtree_parser = commands.add_parser('subtree')
    subtree_commands = subtree_parser.add_subparsers(dest='subtree_command')
    subtree_commands.required = True

    def add_subtree_command(name, func):
        subparser = subtree_commands.add_parser(name)
        subparser.set_defaults(func=func)
        subparser.add_argument('-P', '--prefix', required=True, type=parse_prefix)
        return subparser

    def add_empty_policy(subparser):
        policy = subparser.add_mutually_exclusive_group(required=True)
        policy.add_argument('--keep-empty', dest='empty_commits', action='store_const', const='keep')
        policy.add_argument('--skip-empty', dest='empty_commits', action='store_const', const='skip')

    add_parser = add_subtree_command('add', subtree_add)
    add_parser.add_argument('source', nargs='+', metavar='REV | REPOSITORY REF')
    add_parser.add_argument('--squash', action='store_true')
    add_parser.add_argument('-m', '--message')

    merge_parser = add_subtree_command('merge', subtree_merge)
    merge_parser.add_argument('commit')
    merge_parser.add_argument('--squash', action='store_true')
    merge_parser.add_argument('-m', '--message')

    split_parser = add_subtree_command('split', subtree_split)
    split_parser.add_argument('commit', nargs='?')
    add_empty_policy(split_parser)
    split_parser.add_argument('-b', '--branch')
    split_parser.add_argument('--rejoin', action='store_true')
    split_parser.add_argument('--squash', action='store_true')
    split_parser.add_argument('--onto')
    split_parser.add_argument('--annotate')
    split_parser.add_argument('--ignore-joins', action='store_true')
    split_parser.add_argument('-j', '--jobs', type=int, default=1)

    pull_parser = add_subtree_command('pull', subtree_pull)
    pull_parser.add_argument('repository')
    pull_parser.add_argument('ref')
    pull_parser.add_argument('--squash', action='store_true')
    pull_parser.add_argument('-m', '--message')

    push_parser = add_subtree_command('push', subtree_push)
    push_parser.add_argument('repository')
    push_parser.add_argument('ref')
    add_empty_policy(push_parser)
    push_parser.add_argument('--commit')
    push_parser.add_argument('-f', '--force', action='store_true')

    return parser.parse_args(argv)


def init(args):
    base.init()
    print(f'Initialized empty ugraft repository in {os.getcwd()}/{data.REPO_DIR_NAME}')


def commit(args):
    head = base.get_head()
    tree = base.write_tree(base.get_working_tree())
    oid = base.write_commit(tree, [head] if head else [], args.message, author=load_config().signature())
    base.reset(oid)
    print(oid)


def log(args):
    oid = base.get_oid(args.oid)
    while oid:
        commit_ = base.get_commit(oid)
        print(f'commit {oid}')
        if len(commit_.parents) > 1:
            print(f"Merge: {' '.join(parent[:10] for parent in commit_.parents)}")
        if commit_.author:
            print(f'Author: {commit_.author.name} <{commit_.author.email}>')
        print('')
        print(textwrap.indent(commit_.message, '    '))
        print('')

        oid = commit_.parents[0] if commit_.parents else None


def checkout(args):
    base.checkout(args.name)


def _refresh_working_directory():
    base.read_tree(base.get_commit(base.get_head()).tree)


def _report_merge(result):
    print(result.commit)
    for path in result.conflicts:
        print(f'CONFLICT {path}')
    return 1 if result.conflicts else 0


def subtree_add(args):
    if len(args.source) == 1:
        result = subtree.add(args.prefix, base.get_oid(args.source[0]), squash=args.squash, message=args.message)
    elif len(args.source) == 2:
        repository, ref = args.source
        result = subtree.add_from_repository(args.prefix, repository, ref, squash=args.squash, message=args.message)
    else:
        raise UgraftError('subtree add takes either REV or REPOSITORY REF')
    _refresh_working_directory()
    return _report_merge(result)


def subtree_merge(args):
    result = subtree.merge(args.prefix, base.get_oid(args.commit), squash=args.squash, message=args.message)
    _refresh_working_directory()
    return _report_merge(result)


def subtree_split(args):
    result = subtree.split(
        args.prefix,
        empty_commits=args.empty_commits,
        commit=base.get_oid(args.commit) if args.commit else None,
        branch=args.branch,
        rejoin=args.rejoin,
        squash=args.squash,
        onto=base.get_oid(args.onto) if args.onto else None,
        annotate=args.annotate,
        ignore_prior_joins=args.ignore_joins,
        jobs=args.jobs)
    print(result.head)


def subtree_pull(args):
    result = subtree.pull(args.prefix, args.repository, args.ref, squash=args.squash, message=args.message)
    _refresh_working_directory()
    return _report_merge(result)


def subtree_push(args):
    result = subtree.push(
        args.prefix, args.repository, args.ref,
        empty_commits=args.empty_commits,
        commit=base.get_oid(args.commit) if args.commit else None,
        force=args.force)
    print(f'{result.split.head} -> {result.repository} {result.ref}')
