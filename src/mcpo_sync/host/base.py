"""Base host runtime interface and data models."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List


@dataclass
class HelperResult:
    """Outcome of one disposable helper container run."""

    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


@dataclass
class ComposeStack:
    """A deployed compose project, as ``docker compose ls`` reports it."""

    name: str
    config_files: List[str] = field(default_factory=list)
    services: List[str] = field(default_factory=list)


@dataclass
class ComposeDetails:
    """Where the mcpo configuration of the matched stack lives on the host."""

    project_name: str
    compose_file: str
    config_dir: str
    config_path: str


class BaseHostRuntime(ABC):
    """Abstract access to the container engine that owns the host files."""

    @abstractmethod
    async def run_helper(
        self,
        mount_source: str,
        mount_target: str,
        command: List[str],
    ) -> HelperResult:
        """Run a short-lived helper with *mount_source* bound at *mount_target*.

        Args:
            mount_source: Host directory to bind
            mount_target: Path of the bind inside the helper
            command: Command line; replaces the image entrypoint

        Returns:
            The helper's exit code and output
        """
        pass

    @abstractmethod
    async def list_compose_stacks(self) -> List[ComposeStack]:
        """List deployed compose stacks.

        Returns:
            Stacks with their config file paths
        """
        pass

    @abstractmethod
    async def restart_service(self, project_name: str, service_name: str) -> int:
        """Restart every container of one compose service.

        Returns:
            Number of containers restarted
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if the container engine is reachable."""
        pass

    async def close(self):
        """Release engine connections."""
        return None
