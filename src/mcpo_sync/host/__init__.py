"""Access to the host filesystem and compose stacks through helper containers."""

from .base import BaseHostRuntime, ComposeDetails, ComposeStack, HelperResult
from .bridge import HostFileBridge
from .docker import DockerHostRuntime

__all__ = [
    "BaseHostRuntime",
    "ComposeDetails",
    "ComposeStack",
    "HelperResult",
    "HostFileBridge",
    "DockerHostRuntime",
]
