"""Container runtime interface and Docker CLI implementation."""

import asyncio
import json
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from ._utils import logger


class ContainerRuntimeError(Exception):
    """Base error for container runtime operations."""


class RuntimeCommandError(ContainerRuntimeError):
    """A command exited with a non-zero status."""

    def __init__(self, argv: Sequence[str], returncode: int, stderr: str = ""):
        self.argv = list(argv)
        self.returncode = returncode
        self.stderr = stderr.strip()
        detail = self.stderr or f"exit code {returncode}"
        super().__init__(f"{self.argv[0]} failed: {detail}")


class RuntimeTimeoutError(ContainerRuntimeError):
    """A command did not finish within its timeout."""

    def __init__(self, argv: Sequence[str], timeout: float):
        self.argv = list(argv)
        self.timeout = timeout
        super().__init__(f"{self.argv[0]} timed out after {timeout:g}s")


class RuntimeUnavailableError(ContainerRuntimeError):
    """A command could not be started, e.g. the client binary is missing."""

    def __init__(self, argv: Sequence[str], error: OSError):
        self.argv = list(argv)
        self.error = error
        super().__init__(f"{self.argv[0]} could not be started: {error}")


@dataclass(frozen=True)
class ContainerInfo:
    id: str
    name: str
    state: str

    @property
    def running(self) -> bool:
        return self.state == "running"


class ContainerRuntime(ABC):
    """Operations the backup orchestrator needs from a container runtime.

    All commands are given as argv sequences; implementations must never
    hand them to a shell.
    """

    @abstractmethod
    async def list_containers(self) -> List[ContainerInfo]:
        """List containers in any state."""

    @abstractmethod
    async def exec_in_container(
        self,
        container_id: str,
        argv: Sequence[str],
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> str:
        """Run a command inside a container and return its stdout."""

    @abstractmethod
    async def run(self, argv: Sequence[str], timeout: Optional[float] = None) -> str:
        """Run a host-level command and return its stdout."""

    @abstractmethod
    async def copy_from_container(self, container_id: str, container_path: str, host_path: str) -> None:
        """Copy a file out of a container."""

    @abstractmethod
    async def copy_to_container(self, container_id: str, host_path: str, container_path: str) -> None:
        """Copy a file into a container."""


class DockerRuntime(ContainerRuntime):
    """ContainerRuntime backed by the ``docker`` command line client."""

    def __init__(self, docker_bin: str = "docker", default_timeout: Optional[float] = 600.0):
        self.docker_bin = docker_bin
        self.default_timeout = default_timeout

    async def _execute(
        self,
        argv: Sequence[str],
        timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> str:
        timeout = timeout if timeout is not None else self.default_timeout
        logger.debug(f"Running: {' '.join(argv)}")

        process_env = None
        if env:
            process_env = os.environ.copy()
            process_env.update(env)

        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=process_env,
            )
        except OSError as e:
            raise RuntimeUnavailableError(argv, e) from e
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise RuntimeTimeoutError(argv, timeout)

        if process.returncode != 0:
            raise RuntimeCommandError(argv, process.returncode, stderr.decode(errors="replace"))

        return stdout.decode(errors="replace")

    async def list_containers(self) -> List[ContainerInfo]:
        output = await self._execute(
            [self.docker_bin, "ps", "-a", "--no-trunc", "--format", "{{json .}}"]
        )
        containers = []
        for line in output.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                data = json.loads(line)
            except json.JSONDecodeError:
                logger.warning(f"Skipping unparseable docker ps line: {line[:120]}")
                continue
            containers.append(ContainerInfo(
                id=data.get("ID", ""),
                name=data.get("Names", ""),
                state=data.get("State", "").lower(),
            ))
        return containers

    async def exec_in_container(
        self,
        container_id: str,
        argv: Sequence[str],
        env: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> str:
        # Values travel through the client's environment, not its argv
        command = [self.docker_bin, "exec"]
        for key in (env or {}):
            command.extend(["-e", key])
        command.append(container_id)
        command.extend(argv)
        return await self._execute(command, timeout, env=env)

    async def run(self, argv: Sequence[str], timeout: Optional[float] = None) -> str:
        return await self._execute(argv, timeout)

    async def copy_from_container(self, container_id: str, container_path: str, host_path: str) -> None:
        await self._execute([self.docker_bin, "cp", f"{container_id}:{container_path}", host_path])

    async def copy_to_container(self, container_id: str, host_path: str, container_path: str) -> None:
        await self._execute([self.docker_bin, "cp", host_path, f"{container_id}:{container_path}"])
