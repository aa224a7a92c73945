"""PostgreSQL backup/restore exporter using pg_dump/pg_restore inside the container."""

from pathlib import Path
from typing import Awaitable, Callable, List, Optional

from ..._utils import logger
from ...config import BackupConfig
from ...credentials import CredentialStore
from ...runtime import ContainerInfo, ContainerRuntime, ContainerRuntimeError

StepNotifier = Callable[[str], Awaitable[None]]

LIST_DATABASES_SQL = (
    "SELECT datname FROM pg_database "
    "WHERE datistemplate = false AND datname != 'postgres'"
)


def quote_literal(value: str) -> str:
    """Quote a value as an SQL string literal."""
    return "'" + value.replace("'", "''") + "'"


def _is_safe_name(name: str) -> bool:
    return bool(name) and "/" not in name and name not in (".", "..")


class PostgresExporter:
    """Dump and restore every user database of the running PostgreSQL container.

    One custom-format dump per database is stored as ``postgres/<db>.sql``.
    A failure on one database is reported through ``notify`` and does not
    stop the others.
    """

    def __init__(
        self,
        runtime: ContainerRuntime,
        credentials: CredentialStore,
        config: BackupConfig,
        notify: StepNotifier,
    ):
        self.runtime = runtime
        self.credentials = credentials
        self.config = config
        self.notify = notify
        self.user = config.postgres_user

    async def find_container(self) -> Optional[ContainerInfo]:
        """Return the running PostgreSQL container, if any."""
        match = self.config.postgres_container_match.lower()
        for container in await self.runtime.list_containers():
            if match in container.name.lower() and container.running:
                return container
        return None

    async def _connect(self) -> Optional[tuple]:
        """Resolve (container, password), or None when the component must be skipped."""
        try:
            container = await self.find_container()
        except ContainerRuntimeError as e:
            logger.warning(f"Cannot list containers: {e}")
            return None
        if container is None:
            logger.info("No running PostgreSQL container, skipping database component")
            return None

        password = self.credentials.postgres_password()
        if not password:
            logger.info("No PostgreSQL password stored, skipping database component")
            return None

        return container, password

    async def _exec(self, container: ContainerInfo, password: str, argv: List[str]) -> str:
        return await self.runtime.exec_in_container(
            container.id,
            argv,
            env={"PGPASSWORD": password},
            timeout=self.config.command_timeout,
        )

    async def list_databases(self, container: ContainerInfo, password: str) -> List[str]:
        output = await self._exec(
            container, password,
            ["psql", "-U", self.user, "-t", "-A", "-c", LIST_DATABASES_SQL],
        )
        return [line.strip() for line in output.splitlines() if line.strip()]

    async def export(self, output_dir: Path) -> bool:
        """Dump all databases into ``output_dir/postgres``.

        Returns:
            True if the dump loop ran, False if the component was skipped
        """
        connection = await self._connect()
        if connection is None:
            return False
        container, password = connection

        try:
            pg_dir = output_dir / "postgres"
            pg_dir.mkdir(parents=True, exist_ok=True)
            databases = await self.list_databases(container, password)
        except (ContainerRuntimeError, OSError) as e:
            logger.warning(f"Cannot list databases: {e}")
            return False

        if not databases:
            logger.info("No user databases found")
            return False

        for database in databases:
            if not _is_safe_name(database):
                logger.warning(f"Skipping database with unsupported name: {database!r}")
                await self.notify(f"Warning: {database} - unsupported database name")
                continue
            try:
                await self._dump_database(container, password, database, pg_dir)
                await self.notify(f"Database {database} exported.")
            except Exception as e:
                logger.warning(f"Dump of database {database} failed: {e}")
                await self.notify(f"Warning: {database} - {e}")

        logger.info(f"PostgreSQL export complete: {pg_dir}")
        return True

    async def _remove_container_file(self, container: ContainerInfo, password: str, container_path: str) -> None:
        try:
            await self._exec(container, password, ["rm", "-f", container_path])
        except ContainerRuntimeError as e:
            logger.warning(f"Could not remove {container_path} from container {container.name}: {e}")

    async def _dump_database(self, container: ContainerInfo, password: str, database: str, pg_dir: Path) -> None:
        container_path = f"/tmp/dump_{database}.sql"
        try:
            await self._exec(
                container, password,
                ["pg_dump", "-U", self.user, "-Fc", "-f", container_path, f"--dbname={database}"],
            )
            await self.runtime.copy_from_container(container.id, container_path, str(pg_dir / f"{database}.sql"))
        finally:
            await self._remove_container_file(container, password, container_path)

    async def restore(self, input_dir: Path) -> bool:
        """Recreate each database found in ``input_dir/postgres`` from its dump.

        Returns:
            True if the restore loop ran, False if the component was skipped
        """
        pg_dir = input_dir / "postgres"
        if not pg_dir.is_dir():
            return False

        connection = await self._connect()
        if connection is None:
            return False
        container, password = connection

        try:
            dumps = sorted(p for p in pg_dir.iterdir() if p.is_file() and p.name.endswith(".sql"))
        except OSError as e:
            logger.warning(f"Cannot read database dumps: {e}")
            return False

        for dump in dumps:
            database = dump.name[:-len(".sql")]
            try:
                await self._restore_database(container, password, database, dump)
                await self.notify(f"Database {database} restored.")
            except Exception as e:
                logger.warning(f"Restore of database {database} failed: {e}")
                await self.notify(f"Warning: {database} - {e}")

        logger.info(f"PostgreSQL restore complete from: {pg_dir}")
        return True

    async def _restore_database(self, container: ContainerInfo, password: str, database: str, dump: Path) -> None:
        container_path = f"/tmp/restore_{dump.name}"
        try:
            await self.runtime.copy_to_container(container.id, str(dump), container_path)

            # Preparation steps are allowed to fail; pg_restore decides the outcome
            preparation = [
                ["psql", "-U", self.user, "-c",
                 "SELECT pg_terminate_backend(pid) FROM pg_stat_activity "
                 f"WHERE datname = {quote_literal(database)} AND pid <> pg_backend_pid()"],
                ["dropdb", "-U", self.user, "--if-exists", "--", database],
                ["createdb", "-U", self.user, "--", database],
            ]
            for argv in preparation:
                try:
                    await self._exec(container, password, argv)
                except ContainerRuntimeError as e:
                    logger.debug(f"{argv[0]} for {database} failed: {e}")

            await self._exec(
                container, password,
                ["pg_restore", "-U", self.user, f"--dbname={database}", container_path],
            )
        finally:
            await self._remove_container_file(container, password, container_path)
