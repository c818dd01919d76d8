"""Docker host runtime built on the Docker Engine API."""

import logging
from collections import OrderedDict
from typing import Dict, List, Optional

import aiodocker
from aiodocker.exceptions import DockerError

from ..exceptions import McpoIOError, NotFoundError
from .base import BaseHostRuntime, ComposeStack, HelperResult

logger = logging.getLogger(__name__)

COMPOSE_PROJECT_LABEL = "com.docker.compose.project"
COMPOSE_CONFIG_FILES_LABEL = "com.docker.compose.project.config_files"
COMPOSE_SERVICE_LABEL = "com.docker.compose.service"
HELPER_LABEL = "mcpo-sync.helper"


class DockerHostRuntime(BaseHostRuntime):
    """Runs helpers and inspects compose stacks through aiodocker."""

    def __init__(self, helper_image: str = "alpine:3.20"):
        """Initialize Docker runtime.

        Args:
            helper_image: Image used for disposable helper containers
        """
        self.helper_image = helper_image
        self.docker: Optional[aiodocker.Docker] = None
        self._initialized = False
        self._image_ready = False

    async def _ensure_initialized(self):
        """Ensure Docker client is initialized."""
        if self._initialized:
            return

        try:
            self.docker = aiodocker.Docker()
            await self.docker.version()
            self._initialized = True
            logger.info("Docker client initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize Docker client: {e}")
            if self.docker is not None:
                await self.docker.close()
                self.docker = None
            raise McpoIOError(f"Docker engine is not reachable: {e}") from e

    async def _ensure_helper_image(self):
        """Pull the helper image when it is not available locally."""
        if self._image_ready:
            return
        try:
            await self.docker.images.inspect(self.helper_image)
        except DockerError as e:
            if e.status != 404:
                raise
            logger.info(f"Pulling helper image {self.helper_image}...")
            await self.docker.images.pull(self.helper_image)
        self._image_ready = True

    async def run_helper(
        self,
        mount_source: str,
        mount_target: str,
        command: List[str],
    ) -> HelperResult:
        """Run a disposable helper container and collect its output.

        Args:
            mount_source: Host directory to bind
            mount_target: Path of the bind inside the helper
            command: Command line; replaces the image entrypoint

        Returns:
            HelperResult with exit code, stdout and stderr
        """
        await self._ensure_initialized()

        container_config = {
            "Image": self.helper_image,
            "Entrypoint": [command[0]],
            "Cmd": command[1:],
            "Labels": {HELPER_LABEL: "true"},
            "AttachStdout": True,
            "AttachStderr": True,
            "HostConfig": {
                "Binds": [f"{mount_source}:{mount_target}"],
                "NetworkMode": "none",
            },
        }

        container = None
        try:
            await self._ensure_helper_image()
            container = await self.docker.containers.create(config=container_config)
            await container.start()
            status = await container.wait()
            stdout = await container.log(stdout=True)
            stderr = await container.log(stderr=True)

            result = HelperResult(
                exit_code=int(status.get("StatusCode", -1)),
                stdout="".join(stdout),
                stderr="".join(stderr),
            )
            logger.debug("Helper %s exited with %d", command[0], result.exit_code)
            return result

        except DockerError as e:
            logger.error(f"Helper container failed: {e}")
            raise McpoIOError(f"Helper container failed: {e.message}") from e

        finally:
            if container is not None:
                try:
                    await container.delete(force=True)
                except DockerError as e:
                    logger.warning(f"Failed to remove helper container {container.id}: {e}")

    async def _list_compose_containers(self, labels: Optional[Dict[str, str]] = None):
        filters = {"label": [COMPOSE_PROJECT_LABEL]}
        if labels:
            for key, value in labels.items():
                filters["label"].append(f"{key}={value}")
        return await self.docker.containers.list(all=True, filters=filters)

    async def list_compose_stacks(self) -> List[ComposeStack]:
        """Group containers into stacks by their compose labels.

        Returns:
            Stacks in order of first appearance
        """
        await self._ensure_initialized()

        try:
            containers = await self._list_compose_containers()
        except DockerError as e:
            logger.error(f"Failed to list Docker containers: {e}")
            raise McpoIOError(f"Failed to list compose stacks: {e.message}") from e

        stacks: "OrderedDict[str, ComposeStack]" = OrderedDict()
        for container in containers:
            labels = container["Labels"] or {}
            project = labels.get(COMPOSE_PROJECT_LABEL)
            if not project:
                continue
            stack = stacks.setdefault(project, ComposeStack(name=project))

            config_files = labels.get(COMPOSE_CONFIG_FILES_LABEL, "")
            for path in (p.strip() for p in config_files.split(",")):
                if path and path not in stack.config_files:
                    stack.config_files.append(path)

            service = labels.get(COMPOSE_SERVICE_LABEL)
            if service and service not in stack.services:
                stack.services.append(service)

        return list(stacks.values())

    async def restart_service(self, project_name: str, service_name: str) -> int:
        """Restart all containers of a compose service.

        Raises:
            NotFoundError: no container belongs to the service
        """
        await self._ensure_initialized()

        try:
            containers = await self._list_compose_containers({
                COMPOSE_PROJECT_LABEL: project_name,
                COMPOSE_SERVICE_LABEL: service_name,
            })
            if not containers:
                raise NotFoundError(
                    f"Service '{service_name}' not found in compose project '{project_name}'."
                )
            for container in containers:
                await container.restart()
            logger.info(f"Restarted {len(containers)} container(s) of {project_name}/{service_name}")
            return len(containers)

        except DockerError as e:
            logger.error(f"Failed to restart {project_name}/{service_name}: {e}")
            raise McpoIOError(f"Failed to restart service '{service_name}': {e.message}") from e

    async def health_check(self) -> bool:
        """Check if Docker daemon is available and healthy."""
        try:
            await self._ensure_initialized()
            await self.docker.version()
            return True

        except Exception as e:
            logger.error(f"Docker health check failed: {e}")
            return False

    async def close(self):
        """Close Docker client."""
        if self.docker:
            await self.docker.close()
            self.docker = None
            self._initialized = False
