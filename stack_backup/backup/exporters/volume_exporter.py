"""Docker named volume backup/restore exporter using a throwaway helper container."""

from pathlib import Path
from typing import List

from ..._utils import logger
from ...config import BackupConfig
from ...runtime import ContainerRuntime, ContainerRuntimeError

VOLUME_ARCHIVE = "instances.tar.gz"


class VolumeExporter:
    """Archive a named volume to ``evolution/instances.tar.gz`` and back."""

    def __init__(self, runtime: ContainerRuntime, config: BackupConfig):
        self.runtime = runtime
        self.volume = config.volume_name
        self.image = config.helper_image
        self.probe_timeout = config.probe_timeout
        self.timeout = config.volume_timeout
        self.docker_bin = config.docker_bin

    def _helper(self, mounts: List[str], argv: List[str]) -> List[str]:
        command = [self.docker_bin, "run", "--rm"]
        for mount in mounts:
            command.extend(["-v", mount])
        command.append(self.image)
        command.extend(argv)
        return command

    async def has_content(self) -> bool:
        """Probe whether the volume holds any entries."""
        output = await self.runtime.run(
            self._helper([f"{self.volume}:/data:ro"], ["ls", "-A", "/data"]),
            timeout=self.probe_timeout,
        )
        return bool(output.strip())

    async def export(self, output_dir: Path) -> bool:
        """Archive the volume into ``output_dir/evolution``.

        Returns:
            True if the volume archive was written
        """
        try:
            if not await self.has_content():
                logger.info(f"Volume {self.volume} is empty, skipping")
                return False

            evolution_dir = (output_dir / "evolution").resolve()
            evolution_dir.mkdir(parents=True, exist_ok=True)
            await self.runtime.run(
                self._helper(
                    [f"{self.volume}:/data:ro", f"{evolution_dir}:/backup"],
                    ["tar", "-czf", f"/backup/{VOLUME_ARCHIVE}", "-C", "/data", "."],
                ),
                timeout=self.timeout,
            )
        except (ContainerRuntimeError, OSError) as e:
            logger.warning(f"Volume {self.volume} export failed: {e}")
            return False

        logger.info(f"Volume export complete: {evolution_dir / VOLUME_ARCHIVE}")
        return True

    async def restore(self, input_dir: Path) -> bool:
        """Extract ``input_dir/evolution/instances.tar.gz`` into the volume.

        Returns:
            True if the volume was restored
        """
        archive = input_dir / "evolution" / VOLUME_ARCHIVE
        if not archive.is_file():
            return False

        evolution_dir = archive.parent.resolve()
        try:
            await self.runtime.run(
                self._helper(
                    [f"{self.volume}:/data", f"{evolution_dir}:/backup:ro"],
                    ["tar", "-xzf", f"/backup/{VOLUME_ARCHIVE}", "-C", "/data"],
                ),
                timeout=self.timeout,
            )
        except (ContainerRuntimeError, OSError) as e:
            logger.warning(f"Volume {self.volume} restore failed: {e}")
            return False

        logger.info(f"Volume {self.volume} restored from: {archive}")
        return True
