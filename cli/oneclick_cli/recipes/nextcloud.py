from __future__ import annotations

import shutil
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from oneclick_core.compose import escape_interpolation
from oneclick_core.errors import OrchestratorError
from oneclick_core.runner import output_of
from oneclick_core.session import Step
from oneclick_core.validation import domain, not_empty

from .. import console, interactive
from .base import DeployOptions, Recipe

NEXTCLOUD_IMAGE = "nextcloud:latest"
MARIADB_IMAGE = "mariadb:10.6"
REDIS_IMAGE = "redis:alpine"
NPM_IMAGE = "jc21/nginx-proxy-manager:latest"
SHARED_NETWORK = "my_shared_network"
BASIC_PORT = 8080
NPM_ADMIN_PORT = 81
BASIC_CONTAINER = "nextcloud-basic"
APP_CONTAINER = "nextcloud-app"


class DeployMode(str, Enum):
    BASIC = "basic"
    ADVANCED = "advanced"


MODE_TITLES = {
    DeployMode.BASIC: "Basic: single container, SQLite, port 8080",
    DeployMode.ADVANCED: "Advanced: Nginx Proxy Manager + MariaDB + Redis, HTTPS on your domain",
}


@dataclass
class NextcloudAnswers:
    mode: DeployMode | None = None
    domain: str | None = None
    db_root_password: str | None = None
    db_password: str | None = None
    npm_dir: Path | None = None


def build_basic_compose() -> dict[str, Any]:
    return {
        "services": {
            "app": {
                "image": NEXTCLOUD_IMAGE,
                "container_name": BASIC_CONTAINER,
                "restart": "unless-stopped",
                "ports": [f"{BASIC_PORT}:80"],
                "volumes": ["./nextcloud:/var/www/html"],
            },
        },
    }


def _shared_network() -> dict[str, Any]:
    return {"default": {"name": SHARED_NETWORK, "external": True}}


def build_npm_compose() -> dict[str, Any]:
    return {
        "services": {
            "app": {
                "image": NPM_IMAGE,
                "restart": "unless-stopped",
                "ports": ["80:80", "443:443", f"{NPM_ADMIN_PORT}:81"],
                "volumes": ["./data:/data", "./letsencrypt:/etc/letsencrypt"],
            },
        },
        "networks": _shared_network(),
    }


def build_app_compose(answers: NextcloudAnswers) -> dict[str, Any]:
    return {
        "services": {
            "db": {
                "image": MARIADB_IMAGE,
                "container_name": "nextcloud-db",
                "restart": "always",
                "command": "--transaction-isolation=READ-COMMITTED --binlog-format=ROW",
                "volumes": ["./db:/var/lib/mysql"],
                "environment": {
                    "MYSQL_ROOT_PASSWORD": escape_interpolation(answers.db_root_password),
                    "MYSQL_PASSWORD": escape_interpolation(answers.db_password),
                    "MYSQL_DATABASE": "nextcloud",
                    "MYSQL_USER": "nextcloud",
                },
            },
            "redis": {
                "image": REDIS_IMAGE,
                "container_name": "nextcloud-redis",
                "restart": "always",
            },
            "app": {
                "image": NEXTCLOUD_IMAGE,
                "container_name": APP_CONTAINER,
                "restart": "always",
                "depends_on": ["db", "redis"],
                "volumes": ["./nextcloud:/var/www/html"],
                "environment": {
                    "MYSQL_HOST": "db",
                    "MYSQL_PASSWORD": escape_interpolation(answers.db_password),
                    "MYSQL_DATABASE": "nextcloud",
                    "MYSQL_USER": "nextcloud",
                    "REDIS_HOST": "redis",
                    "NEXTCLOUD_TRUSTED_DOMAINS": answers.domain,
                },
            },
        },
        "networks": _shared_network(),
    }


def inject_proxy_config(content: str, nc_domain: str, subnet: str) -> str:
    """Insert reverse-proxy overrides before the 'datadirectory' entry of config.php."""
    if "'overwritehost'" in content:
        return content
    block = [
        f"  'overwrite.cli.url' => 'https://{nc_domain}',",
        "  'overwriteprotocol' => 'https',",
        f"  'overwritehost' => '{nc_domain}',",
        f"  'trusted_proxies' => ['{subnet}'],",
        "  'forwarded_for_headers' => ['HTTP_X_FORWARDED_FOR'],",
    ]
    lines = content.splitlines()
    for idx, line in enumerate(lines):
        if "'datadirectory'" in line:
            lines[idx:idx] = block
            return "\n".join(lines) + "\n"
    raise OrchestratorError(
        "config.php has no 'datadirectory' entry; the web installer has not finished.",
        hint="docker exec -u www-data nextcloud-app php occ status",
    )


class NextcloudRecipe(Recipe):
    name = "nextcloud"
    title = "Nextcloud"

    def __init__(self, options: DeployOptions, answers: NextcloudAnswers | None = None, *, runner=None):
        super().__init__(options, runner=runner)
        self.answers = answers or NextcloudAnswers()

    @property
    def npm_dir(self) -> Path:
        return self.answers.npm_dir or self.work_dir.parent / "npm"

    def steps(self) -> list[Step]:
        steps = super().steps()
        if self.answers.mode is DeployMode.BASIC:
            return steps
        # mode may still be unknown here; the extra steps are no-ops in basic mode
        extra = [
            Step("configure reverse proxy", self.configure_reverse_proxy),
            Step("finish web installation", self.finish_web_installation),
            Step("optimize", self.optimize),
        ]
        return steps[:-1] + extra + steps[-1:]

    @property
    def advanced(self) -> bool:
        return self.answers.mode is DeployMode.ADVANCED

    def collect_configuration(self) -> None:
        a = self.answers
        if a.mode is None:
            a.mode = interactive.select_enum("Deployment mode", MODE_TITLES)
        console.ok(f"Mode: {a.mode.value}")
        if not self.advanced:
            return
        if not a.domain:
            a.domain = interactive.prompt_valid("Domain for Nextcloud (e.g. nc.example.com)", domain)
        if not a.db_root_password:
            a.db_root_password = interactive.prompt_valid(
                "MariaDB root password", lambda v: not_empty(v, label="Root password"), secret=True
            )
        if not a.db_password:
            a.db_password = interactive.prompt_valid(
                "MariaDB password for user 'nextcloud'", lambda v: not_empty(v, label="User password"), secret=True
            )

    def generate_files(self) -> None:
        self.create_work_dir()
        if not self.advanced:
            self.write_stack(build_basic_compose())
            return
        self._remove_basic_container()
        self._ensure_shared_network()
        self.create_dir(self.npm_dir, persistent=True)
        self.write_stack(build_npm_compose(), path=self.npm_dir / "docker-compose.yml")
        self.write_stack(build_app_compose(self.answers))

    def configure_reverse_proxy(self) -> None:
        if not self.advanced:
            return
        ip = self.display_ip()
        console.warn("Open ports 80, 443 and 81 in your firewall / security group.")
        console.print(f"1. Open the Nginx Proxy Manager admin UI: http://{ip}:{NPM_ADMIN_PORT}")
        console.print("2. Log in with admin@example.com / changeme and change these credentials.")
        console.print("3. Hosts -> Proxy Hosts -> Add Proxy Host:")
        console.print(f"   Domain Names: {self.answers.domain}")
        console.print(f"   Scheme: http, Forward Hostname: {APP_CONTAINER}, Forward Port: 80")
        console.print("   Enable Block Common Exploits.")
        console.print("4. SSL tab: request a new Let's Encrypt certificate; enable Force SSL, HTTP/2 and HSTS.")
        console.print("5. Save.")
        console.warn("The domain's DNS record must point at this server or the certificate request fails.")
        if not self.options.assume_yes:
            interactive.pause()

    def finish_web_installation(self) -> None:
        if not self.advanced:
            return
        config_php = self.work_dir / "nextcloud" / "config" / "config.php"
        console.print(f"Open https://{self.answers.domain} and create the admin account to finish the installer.")
        if self.options.assume_yes:
            console.warn("Non-interactive run: apply the reverse-proxy settings once the web installer finishes:")
            occ = f"docker exec -u www-data {APP_CONTAINER} php occ config:system:set"
            console.hint(f"{occ} overwriteprotocol --value=https")
            console.hint(f"{occ} overwritehost --value={self.answers.domain}")
            console.hint(f"{occ} overwrite.cli.url --value=https://{self.answers.domain}")
            return
        interactive.pause("Press Enter once the web installer has finished")
        if not config_php.exists():
            raise OrchestratorError(f"{config_php} was not found.", hint=f"ls -l {config_php.parent}")
        subnet = self._network_subnet()
        config_php.write_text(
            inject_proxy_config(config_php.read_text(encoding="utf-8"), self.answers.domain or "", subnet),
            encoding="utf-8",
        )
        console.ok("Reverse-proxy settings written to config.php.")
        self._app_stack().restart("app")

    def optimize(self) -> None:
        if not self.advanced or self.options.assume_yes:
            return
        stack = self._app_stack()
        for occ_args in (
            ("maintenance:repair", "--include-expensive"),
            ("config:system:set", "maintenance_window_start", "--value=1"),
            ("config:system:set", "default_phone_region", "--value=CN"),
        ):
            stack.exec("app", "php", "occ", *occ_args, user="www-data")
        console.ok("Maintenance tasks finished.")

    def summary(self) -> None:
        if self.advanced:
            console.rule("[bold green]Nextcloud (advanced) is running[/]")
            console.print(f"Nextcloud: https://{self.answers.domain}")
            console.print(f"Proxy manager: http://{self.display_ip()}:{NPM_ADMIN_PORT}")
        else:
            console.rule("[bold green]Nextcloud (basic) is running[/]")
            console.print(f"Open http://{self.display_ip()}:{BASIC_PORT}")
            console.print("Create the admin account and keep the default SQLite database.")
        self.print_management()

    def _app_stack(self):
        return self._require_stacks()[-1]

    def _remove_basic_container(self) -> None:
        res = self.runner.run(["docker", "ps", "-a", "--filter", f"name=^{BASIC_CONTAINER}$", "--format", "{{.Names}}"])
        if BASIC_CONTAINER not in (res.stdout or ""):
            return
        console.warn(f"Found a basic-mode container ({BASIC_CONTAINER}); removing it.")
        self.runner.run(["docker", "rm", "-f", BASIC_CONTAINER])
        old_data = self.work_dir / "nextcloud"
        if old_data.exists() and not self.options.assume_yes:
            if interactive.confirm_choice(f"Delete the old basic-mode data in {old_data}? This cannot be undone.", default=False):
                shutil.rmtree(old_data)
                console.ok("Old data removed.")
            else:
                console.info("Keeping the old data directory.")

    def _ensure_shared_network(self) -> None:
        if self.runner.run(["docker", "network", "inspect", SHARED_NETWORK]).returncode == 0:
            console.info(f"Network {SHARED_NETWORK} already exists.")
            return
        res = self.runner.run(["docker", "network", "create", SHARED_NETWORK])
        if res.returncode != 0:
            raise OrchestratorError(
                f"Failed to create network {SHARED_NETWORK}: {output_of(res)}",
                hint=f"docker network create {SHARED_NETWORK}",
            )
        console.ok(f"Created network {SHARED_NETWORK}")

    def _network_subnet(self) -> str:
        res = self.runner.run(
            ["docker", "network", "inspect", SHARED_NETWORK, "--format", "{{range .IPAM.Config}}{{.Subnet}}{{end}}"]
        )
        subnet = (res.stdout or "").strip()
        if res.returncode != 0 or not subnet:
            raise OrchestratorError(
                f"Could not read the subnet of {SHARED_NETWORK}.",
                hint=f"docker network inspect {SHARED_NETWORK}",
            )
        return subnet
