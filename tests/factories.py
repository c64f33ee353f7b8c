"""Test factories using factory_boy."""

import factory

from repo_sync.core.models.repository import CodeHost, GitRepository, LocalRepository


class GitRepositoryFactory(factory.Factory):
    """Factory for creating GitRepository instances."""

    class Meta:
        model = GitRepository

    name = factory.Sequence(lambda n: f"acme/project-{n}")
    id = factory.LazyAttribute(lambda o: f"github.com/{o.name}")
    code_host = CodeHost.GITHUB
    clone_url = factory.LazyAttribute(lambda o: f"https://github.com/{o.name}.git")
    path = factory.LazyAttribute(lambda o: f"/tmp/repo-sync/repos/{o.id}.git")
    git_config_metadata = factory.LazyAttribute(
        lambda o: {"zoekt.name": o.id, "zoekt.web-url-type": "github"}
    )


class LocalRepositoryFactory(factory.Factory):
    """Factory for creating LocalRepository instances."""

    class Meta:
        model = LocalRepository

    path = factory.Sequence(lambda n: f"/tmp/workspace/project-{n}")
    id = factory.SelfAttribute("path")
    name = factory.LazyAttribute(lambda o: o.path.rsplit("/", 1)[-1])
    excluded_paths = factory.LazyFunction(list)
