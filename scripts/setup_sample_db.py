"""Utility that launches a sample MySQL Docker container with versioned tables."""

from __future__ import annotations

import argparse
import subprocess
import sys
import time
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from versionprune.credentials import CredentialResolver

DEFAULT_CONTAINER = "versionprune-sample-db"
DEFAULT_PORT = 3307
DEFAULT_PASSWORD = "versionprune"
DEFAULT_DB = "versionprune_demo"
DEFAULT_USER = "versionprune"
DOCKER_IMAGE = "mysql:8.4"

VERSIONED_TABLES = ("SiteTree_versions", "Page_versions")


def run(cmd: list[str], *, check: bool = True, **kwargs) -> subprocess.CompletedProcess[str]:
    print("$", " ".join(cmd))
    return subprocess.run(cmd, check=check, text=True, **kwargs)


def container_exists(name: str) -> bool:
    result = subprocess.run(
        ["docker", "ps", "-a", "--filter", f"name={name}", "--format", "{{.ID}}"],
        text=True,
        capture_output=True,
    )
    return bool(result.stdout.strip())


def start_container(name: str, port: int, password: str, database: str, user: str) -> None:
    if container_exists(name):
        print(f"Container '{name}' already exists. Reusing it.")
        run(["docker", "start", name], check=False)
    else:
        run(
            [
                "docker",
                "run",
                "-d",
                "--name",
                name,
                "-e",
                f"MYSQL_ROOT_PASSWORD={password}",
                "-e",
                f"MYSQL_DATABASE={database}",
                "-e",
                f"MYSQL_USER={user}",
                "-e",
                f"MYSQL_PASSWORD={password}",
                "-p",
                f"{port}:3306",
                DOCKER_IMAGE,
            ]
        )
    wait_for_start(name, password)


def wait_for_start(name: str, password: str, retries: int = 30, delay: float = 2.0) -> None:
    for _ in range(retries):
        result = subprocess.run(
            ["docker", "exec", name, "mysqladmin", "ping", "-uroot", f"-p{password}", "--silent"],
            text=True,
            capture_output=True,
        )
        if result.returncode == 0:
            return
        time.sleep(delay)
    print("Warning: database did not report ready state; continuing anyway.")


def seed_sql(versions_per_record: int = 4, records: int = 3) -> str:
    """DDL plus rows: every record gets ``versions_per_record`` versions, one record only one."""

    statements: list[str] = ["CREATE TABLE IF NOT EXISTS SiteTree (ID INT PRIMARY KEY, Title VARCHAR(255));"]
    for table in VERSIONED_TABLES:
        statements.append(
            f"CREATE TABLE IF NOT EXISTS `{table}` ("
            "ID INT AUTO_INCREMENT PRIMARY KEY, "
            "RecordID INT NOT NULL, "
            "Version INT NOT NULL, "
            "Title VARCHAR(255), "
            "UNIQUE KEY RecordID_Version (RecordID, Version));"
        )
        rows: list[str] = []
        for record_id in range(1, records + 1):
            for version in range(1, versions_per_record + 1):
                rows.append(f"({record_id}, {version}, 'Record {record_id} v{version}')")
        rows.append(f"({records + 1}, 1, 'Record {records + 1} v1')")
        statements.append(
            f"INSERT IGNORE INTO `{table}` (RecordID, Version, Title) VALUES {', '.join(rows)};"
        )
    return "\n".join(statements)


def seed_data(name: str, database: str, user: str, password: str) -> None:
    run(
        ["docker", "exec", "-i", name, "mysql", f"-u{user}", f"-p{password}", database],
        input=seed_sql(),
    )


def render_env_file(port: int, user: str, database: str, password: str) -> str:
    return "\n".join(
        [
            'SS_DATABASE_CLASS="MySQLDatabase"',
            'SS_DATABASE_SERVER="127.0.0.1"',
            f'SS_DATABASE_PORT="{port}"',
            f'SS_DATABASE_NAME="{database}"',
            f'SS_DATABASE_USERNAME="{user}"',
            f'SS_DATABASE_PASSWORD="{password}"',
        ]
    ) + "\n"


def write_env_file(target_dir: Path, port: int, user: str, database: str, password: str) -> Path:
    path = target_dir / ".env"
    if path.exists():
        print(f"{path} already exists; leaving as-is.")
        return path
    path.write_text(render_env_file(port, user, database, password))
    resolved = CredentialResolver(target_dir).resolve()
    print(f"Wrote {path} ({', '.join(sorted(resolved))}).")
    return path


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--container", default=DEFAULT_CONTAINER, help="Docker container name")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="Host port to expose MySQL on")
    parser.add_argument("--password", default=DEFAULT_PASSWORD, help="MySQL password")
    parser.add_argument("--database", default=DEFAULT_DB, help="Database name to create")
    parser.add_argument("--user", default=DEFAULT_USER, help="Database user")
    parser.add_argument("--env-dir", type=Path, default=ROOT, help="Directory to write the .env file into")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    try:
        start_container(args.container, args.port, args.password, args.database, args.user)
        seed_data(args.container, args.database, args.user, args.password)
    except FileNotFoundError:
        print("Docker is not installed or not on PATH.")
        return 1
    write_env_file(args.env_dir, args.port, args.user, args.database, args.password)
    print(
        "Sample database is ready. Run `versionprune --base-path "
        f"{args.env_dir} --report text` to prune it."
    )
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
