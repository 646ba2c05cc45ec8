#!/usr/bin/env python3
"""
Citadel development environment controller.

A development environment is a directory holding the Citadel source
repositories, a Vagrantfile describing the development VM and a
``.citadel-dev`` marker file. Everything past setup is delegated to Vagrant
on the host and docker-compose inside the VM.
"""

import logging
import shlex
import shutil
import subprocess
import sys
import time
from pathlib import Path
from typing import List, Optional

from citadel_dev.utils import Colors, run_subprocess

logger = logging.getLogger(__name__)

SENTINEL_FILE = ".citadel-dev"
RESOURCES_DIR = Path(__file__).parent / "resources"
VAGRANTFILE = "Vagrantfile"
COMPOSE_OVERLAY = "docker-compose.override.yml"

GITHUB_ORG = "runcitadel"
REPOSITORIES = [
    "core",
    "dashboard",
    "ui",
    "manager",
    "middleware",
    "sdk",
    "fs",
    "utils",
    "bitcoin-rpc",
    "node-lndconnect",
]
PRODUCTION_REPOSITORIES = ["core"]

NETWORKS = ("mainnet", "testnet", "signet", "regtest")
DEFAULT_NETWORK = "regtest"

# Vagrant mounts the environment root at /vagrant
VM_WORKDIR = "/vagrant/core"
DEVICE_HOSTNAME = "citadel-dev.local"
BITCOIN_CLI = "docker exec bitcoin bitcoin-cli"
LNCLI = "docker exec lnd lncli"
LOG_RETRY_DELAY = 1

# vagrant ssh exits 255 when the connection itself fails
SSH_UNREACHABLE = 255
REMOTE_RETRY_DELAY = 1

INSTALL_HINTS = {
    "vagrant": "https://www.vagrantup.com/downloads",
    "git": "https://git-scm.com/downloads",
}


class DevEnvironment:
    """Development environment lifecycle controller."""

    def __init__(self, log_dir: Optional[str] = None, debug: bool = False) -> None:
        self.log_dir = Path(log_dir).expanduser() if log_dir else None
        self.debug = debug

    def check_dependencies(self, *commands: str) -> None:
        """Exit with install instructions if any command is missing from PATH."""
        for command in commands:
            if shutil.which(command) is None:
                logger.error(f"❌ This command requires \"{command}\" to be installed")
                hint = INSTALL_HINTS.get(command)
                if hint:
                    logger.info(f"Install it from: {hint}")
                sys.exit(1)

    def find_root(self, start: Optional[Path] = None) -> Optional[Path]:
        """Return the nearest directory at or above start containing the marker file."""
        current = Path(start or Path.cwd()).resolve()
        for directory in (current, *current.parents):
            if (directory / SENTINEL_FILE).is_file():
                return directory
        return None

    def require_root(self) -> Path:
        root = self.find_root()
        if root is None:
            logger.error("❌ This command must be run from within a citadel-dev environment")
            logger.info("Create one with: citadel-dev init")
            sys.exit(1)
        logger.debug(f"Using environment at: {root}")
        return root

    def _repository_url(self, repo: str, ssh: bool = False) -> str:
        if ssh:
            return f"git@github.com:{GITHUB_ORG}/{repo}.git"
        return f"https://github.com/{GITHUB_ORG}/{repo}.git"

    def _vagrant(self, root: Path, *args: str, check: bool = True) -> subprocess.CompletedProcess:
        """Run a Vagrant command in the environment with output going to the terminal."""
        cmd = ["vagrant", *args]
        logger.debug(f"Running command: {' '.join(cmd)}")
        return subprocess.run(cmd, cwd=root, check=check)

    def _vagrant_run(self, root: Path, command: str, check: bool = True) -> subprocess.CompletedProcess:
        """
        Run a shell command inside the development VM.

        A failed SSH connection is retried until the VM answers. Any other
        exit status belongs to the remote command and is returned or raised.
        """
        while True:
            try:
                result = self._vagrant(root, "ssh", "-c", f"cd {VM_WORKDIR} && {command}", check=check)
            except subprocess.CalledProcessError as e:
                if e.returncode != SSH_UNREACHABLE:
                    raise
            else:
                if result.returncode != SSH_UNREACHABLE:
                    return result

            logger.warning(f"Could not reach the development VM, retrying in {REMOTE_RETRY_DELAY} second...")
            time.sleep(REMOTE_RETRY_DELAY)

    def _prepare(self) -> Path:
        self.check_dependencies("vagrant")
        return self.require_root()

    def init(self, path: Optional[str] = None, production: bool = False, ssh: bool = False) -> None:
        """Initialize a development environment in path (default: current directory)."""
        self.check_dependencies("git")

        target = Path(path).expanduser().resolve() if path else Path.cwd()

        if target.exists():
            if not target.is_dir():
                logger.error(f"❌ Not a directory: {target}")
                sys.exit(1)
            if any(target.iterdir()):
                logger.error(f"❌ Directory is not empty: {target}")
                logger.info("Run init in an empty directory or pass --path")
                sys.exit(1)

        repos = PRODUCTION_REPOSITORIES if production else REPOSITORIES

        target.mkdir(parents=True, exist_ok=True)
        logger.info(f"Initializing citadel-dev environment in: {target}")

        logger.info("Creating Vagrantfile...")
        shutil.copyfile(RESOURCES_DIR / VAGRANTFILE, target / VAGRANTFILE)

        logger.info(f"🔧 Cloning {len(repos)} repositories...")
        cloned: List[Path] = []
        for repo in repos:
            url = self._repository_url(repo, ssh)
            destination = target / repo
            logger.info(f"Cloning {url}")
            try:
                run_subprocess(["git", "clone", url, str(destination)],
                               log_dir=self.log_dir, debug=self.debug, check=True)
            except subprocess.CalledProcessError as e:
                logger.error(f"❌ Failed to clone {repo} (exit code {e.returncode})")
                for directory in cloned + [destination]:
                    shutil.rmtree(directory, ignore_errors=True)
                (target / VAGRANTFILE).unlink()
                sys.exit(1)
            cloned.append(destination)

        if not production:
            logger.info("Installing docker-compose development overlay...")
            shutil.copyfile(RESOURCES_DIR / COMPOSE_OVERLAY, target / "core" / COMPOSE_OVERLAY)

        (target / SENTINEL_FILE).touch()

        logger.info("✅ Your development environment is now set up")
        logger.info("")
        if target != Path.cwd():
            logger.info(f"🚀 Next step: cd {target} && {Colors.BRIGHT_GREEN}citadel-dev boot{Colors.RESET}")
        else:
            logger.info(f"🚀 Next step: Boot the VM with: {Colors.BRIGHT_GREEN}citadel-dev boot{Colors.RESET}")

    def boot(self, network: str = DEFAULT_NETWORK) -> None:
        """Boot the development VM and start Citadel on the given network."""
        if network not in NETWORKS:
            logger.error(f"❌ Unknown network: {network}")
            logger.info(f"Valid networks: {', '.join(NETWORKS)}")
            sys.exit(1)

        root = self._prepare()

        logger.info(f"🚀 Booting development VM ({network})...")
        self._vagrant(root, "up")

        logger.info("🔧 Configuring and starting Citadel...")
        self._vagrant_run(root, f"NETWORK={network} ./scripts/configure && sudo ./scripts/start")
        logger.info(f"✅ Citadel is running on {network} at http://{DEVICE_HOSTNAME}")

    def shutdown(self) -> None:
        root = self._prepare()
        logger.info("Shutting down development VM...")
        self._vagrant(root, "halt")

    def destroy(self, force: bool = False) -> None:
        """Destroy the development VM. Source checkouts are kept."""
        root = self._prepare()
        logger.info("Destroying development VM...")
        args = ["destroy", "-f"] if force else ["destroy"]
        self._vagrant(root, *args)

    def containers(self) -> None:
        root = self._prepare()
        self._vagrant_run(root, "docker-compose config --services")

    def rebuild(self, service: Optional[str]) -> None:
        """Rebuild a container service and restart it."""
        if not service:
            logger.error("❌ A second argument is required: the service to rebuild")
            logger.info("List services with: citadel-dev containers")
            sys.exit(1)

        root = self._prepare()
        quoted = shlex.quote(service)

        logger.info(f"🔧 Rebuilding {service}...")
        self._vagrant_run(
            root,
            f"docker-compose build {quoted}"
            f" && docker-compose stop {quoted}"
            f" && docker-compose rm -f {quoted}"
            f" && DEVICE_HOSTNAME={DEVICE_HOSTNAME} docker-compose up -d {quoted}"
        )
        logger.info(f"✅ Rebuilt {service}")

    def reload(self) -> None:
        root = self._prepare()
        logger.info("Reloading Citadel...")
        self._vagrant_run(root, "sudo ./scripts/stop && sudo ./scripts/start")

    def app(self, args: List[str]) -> None:
        root = self._prepare()
        self._vagrant_run(root, " ".join(["./scripts/app", shlex.join(args)]).rstrip())

    def logs(self, args: List[str]) -> None:
        """
        Follow container logs until interrupted.

        The stream ends whenever the VM or docker-compose restarts, so it is
        reopened after a short pause no matter how it exited.
        """
        root = self._prepare()
        command = " ".join(["docker-compose logs -f --tail 100", shlex.join(args)]).rstrip()

        while True:
            result = self._vagrant_run(root, command, check=False)
            if result.returncode != 0:
                logger.warning(f"Log stream exited with code {result.returncode}, "
                               f"trying again in {LOG_RETRY_DELAY} second...")
            time.sleep(LOG_RETRY_DELAY)

    def run(self, command: List[str]) -> None:
        """Run a raw shell command inside the VM."""
        if not command:
            logger.error("❌ A second argument is required: the command to run")
            sys.exit(1)

        root = self._prepare()
        self._vagrant_run(root, " ".join(command))

    def ssh(self) -> None:
        root = self._prepare()
        self._vagrant(root, "ssh")

    def bitcoin_cli(self, args: List[str]) -> None:
        root = self._prepare()
        self._vagrant_run(root, " ".join([BITCOIN_CLI, shlex.join(args)]).rstrip())

    def lncli(self, args: List[str]) -> None:
        root = self._prepare()
        self._vagrant_run(root, " ".join([LNCLI, shlex.join(args)]).rstrip())

    def _new_address(self, root: Path) -> str:
        result = run_subprocess(
            ["vagrant", "ssh", "-c", f"cd {VM_WORKDIR} && {BITCOIN_CLI} getnewaddress"],
            log_dir=self.log_dir,
            debug=self.debug,
            cwd=root,
            check=True
        )
        lines = [line.strip() for line in result.stdout.splitlines() if line.strip()]
        if not lines:
            logger.error("❌ bitcoind did not return an address")
            sys.exit(1)
        return lines[-1]

    def auto_mine(self, interval: Optional[str]) -> None:
        """Generate a block every interval seconds until interrupted."""
        try:
            seconds = int(interval) if interval else 0
        except ValueError:
            seconds = 0
        if seconds <= 0:
            logger.error("❌ A second argument is required: the block interval in seconds")
            sys.exit(1)

        root = self._prepare()
        address = self._new_address(root)

        logger.info(f"⛏️  Generating a block every {seconds} seconds to {address}. Press CTRL+C to stop...")
        while True:
            result = self._vagrant_run(root, f"{BITCOIN_CLI} generatetoaddress 1 {address}", check=False)
            if result.returncode != 0:
                logger.warning(f"Block generation failed with exit code {result.returncode}")
            time.sleep(seconds)
