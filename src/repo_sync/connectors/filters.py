"""Name, predicate and revision filtering shared by every connector.

Patterns use ``fnmatch`` semantics: case-sensitive, ``*`` matches any run
of characters including ``/``. A pattern equal to the name always matches.
"""

from collections.abc import Iterable, Sequence
from fnmatch import fnmatchcase

import structlog

from repo_sync.core.models.repository import GitRepository

logger = structlog.get_logger(__name__)


def matches_pattern(name: str, pattern: str) -> bool:
    """Check whether ``name`` equals or glob-matches ``pattern``."""
    return name == pattern or fnmatchcase(name, pattern)


def matches_any(name: str, patterns: Iterable[str]) -> bool:
    return any(matches_pattern(name, pattern) for pattern in patterns)


def include_repos_by_name(
    repos: Sequence[GitRepository], patterns: Sequence[str]
) -> list[GitRepository]:
    """Keep only repositories matching at least one pattern.

    An empty pattern list keeps everything.
    """
    if not patterns:
        return list(repos)
    return [repo for repo in repos if matches_any(repo.name, patterns)]


def exclude_repos_by_name(
    repos: Sequence[GitRepository], patterns: Sequence[str]
) -> list[GitRepository]:
    """Drop repositories matching any pattern."""
    kept = []
    for repo in repos:
        if matches_any(repo.name, patterns):
            logger.debug("Excluding repository by name", repo=repo.name)
            continue
        kept.append(repo)
    return kept


def exclude_forked_repos(repos: Sequence[GitRepository]) -> list[GitRepository]:
    kept = []
    for repo in repos:
        if repo.is_fork:
            logger.debug("Excluding forked repository", repo=repo.name)
            continue
        kept.append(repo)
    return kept


def exclude_archived_repos(repos: Sequence[GitRepository]) -> list[GitRepository]:
    kept = []
    for repo in repos:
        if repo.is_archived:
            logger.debug("Excluding archived repository", repo=repo.name)
            continue
        kept.append(repo)
    return kept


def filter_repos(
    repos: Sequence[GitRepository],
    include: Sequence[str] = (),
    exclude: Sequence[str] = (),
    exclude_forks: bool = False,
    exclude_archived: bool = False,
) -> list[GitRepository]:
    """Apply include, then exclude, then fork/archived predicates.

    A repository matching both ``include`` and ``exclude`` is excluded.
    """
    result = include_repos_by_name(repos, include)
    result = exclude_repos_by_name(result, exclude)
    if exclude_forks:
        result = exclude_forked_repos(result)
    if exclude_archived:
        result = exclude_archived_repos(result)
    return result


def resolve_revisions(patterns: Sequence[str], refs: Sequence[str]) -> list[str]:
    """Resolve revision patterns against the ref names a provider reported.

    The result is the union of matches, ordered by pattern and then by the
    provider's ref order, without duplicates. Unmatched patterns contribute
    nothing.
    """
    resolved: dict[str, None] = {}
    for pattern in patterns:
        for ref in refs:
            if matches_pattern(ref, pattern):
                resolved.setdefault(ref, None)
    return list(resolved)
