from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any

from oneclick_core.compose import escape_interpolation
from oneclick_core.validation import domain, email, not_empty, port

from .. import console, interactive
from .base import DeployOptions, Recipe

PMAIL_IMAGE = "ghcr.io/jinnrry/pmail:latest"
MYSQL_IMAGE = "mysql:8.0"
MAIL_PORTS = (25, 80, 443, 110, 465, 587, 993, 995)
BUNDLED_MYSQL_HOST = "pmail-mysql"
DSN_PARAMS = "charset=utf8mb4&parseTime=True&loc=Local"


class DatabaseKind(str, Enum):
    SQLITE = "sqlite"
    NEW_MYSQL = "new-mysql"
    EXISTING_MYSQL = "existing-mysql"


DATABASE_TITLES = {
    DatabaseKind.SQLITE: "SQLite (simple, fine for personal use)",
    DatabaseKind.NEW_MYSQL: "MySQL, new container managed alongside PMail",
    DatabaseKind.EXISTING_MYSQL: "MySQL, an existing server",
}


class MirrorChoice(str, Enum):
    GHPROXY = "ghproxy"
    NJU = "nju"
    CLOUDFLARE = "cloudflare"


MIRROR_IMAGES = {
    MirrorChoice.GHPROXY: "ghproxy.com/ghcr.io/jinnrry/pmail:latest",
    MirrorChoice.NJU: "ghcr.nju.edu.cn/jinnrry/pmail:latest",
    MirrorChoice.CLOUDFLARE: "mirror.ghcr.io/jinnrry/pmail:latest",
}

MIRROR_TITLES = {
    MirrorChoice.NJU: "ghcr.nju.edu.cn (Nanjing University, recommended)",
    MirrorChoice.GHPROXY: "ghproxy.com (generic proxy, may be unstable)",
    MirrorChoice.CLOUDFLARE: "mirror.ghcr.io (Cloudflare)",
}


@dataclass
class MysqlSettings:
    host: str = BUNDLED_MYSQL_HOST
    port: str = "3306"
    database: str = "pmail"
    user: str = "pmail"
    password: str = ""
    root_password: str = ""


@dataclass
class PmailAnswers:
    domain: str | None = None
    web_domain: str | None = None
    ssl_email: str | None = None
    database: DatabaseKind | None = None
    mysql: MysqlSettings | None = None
    mirror: MirrorChoice | None = None


def database_dsn(kind: DatabaseKind, mysql: MysqlSettings | None) -> str:
    if kind is DatabaseKind.SQLITE or mysql is None:
        return "./config/pmail.db"
    return f"{mysql.user}:{mysql.password}@tcp({mysql.host}:{mysql.port})/{mysql.database}?{DSN_PARAMS}"


def build_config(answers: PmailAnswers) -> dict[str, Any]:
    kind = answers.database or DatabaseKind.SQLITE
    return {
        "logLevel": "info",
        "domain": answers.domain,
        "webDomain": answers.web_domain,
        "dkimPrivateKeyPath": "config/dkim/dkim.priv",
        "sslType": "0",
        "SSLPrivateKeyPath": "config/ssl/private.key",
        "SSLPublicKeyPath": "config/ssl/public.crt",
        "dbDSN": database_dsn(kind, answers.mysql),
        "dbType": "sqlite" if kind is DatabaseKind.SQLITE else "mysql",
        "httpsEnabled": 0,
        "spamFilterLevel": 1,
        "httpPort": 80,
        "httpsPort": 443,
        "isInit": False,
    }


def build_compose(answers: PmailAnswers, image: str) -> dict[str, Any]:
    pmail: dict[str, Any] = {
        "image": image,
        "container_name": "pmail",
        "restart": "unless-stopped",
        "ports": [f"{p}:{p}" for p in MAIL_PORTS],
        "volumes": ["./config:/work/config", "./plugins:/work/plugins"],
    }
    services: dict[str, Any] = {"pmail": pmail}
    if answers.database is DatabaseKind.NEW_MYSQL and answers.mysql is not None:
        mysql = answers.mysql
        pmail["depends_on"] = {"mysql": {"condition": "service_healthy"}}
        services["mysql"] = {
            "image": MYSQL_IMAGE,
            "container_name": BUNDLED_MYSQL_HOST,
            "restart": "unless-stopped",
            "environment": {
                "MYSQL_ROOT_PASSWORD": escape_interpolation(mysql.root_password),
                "MYSQL_DATABASE": mysql.database,
                "MYSQL_USER": mysql.user,
                "MYSQL_PASSWORD": escape_interpolation(mysql.password),
            },
            "volumes": ["./mysql_data:/var/lib/mysql"],
            "healthcheck": {
                "test": ["CMD", "mysqladmin", "ping", "-h", "localhost"],
                "interval": "10s",
                "timeout": "5s",
                "retries": 5,
            },
        }
    return {"services": services}


def _secret(message: str) -> str:
    return interactive.prompt_valid(message, lambda v: not_empty(v, label="Password"), secret=True)


def _collect_new_mysql() -> MysqlSettings:
    console.info("A MySQL container will be created for PMail.")
    return MysqlSettings(
        root_password=_secret("Root password for the new MySQL"),
        password=_secret("Password for the MySQL user 'pmail'"),
    )


def _collect_existing_mysql() -> MysqlSettings:
    return MysqlSettings(
        host=interactive.prompt_valid("MySQL host", lambda v: not_empty(v, label="Host")),
        port=interactive.prompt_valid("MySQL port", port, default="3306"),
        database=interactive.prompt_valid("MySQL database", lambda v: not_empty(v, label="Database")),
        user=interactive.prompt_valid("MySQL user", lambda v: not_empty(v, label="User")),
        password=_secret("MySQL password"),
    )


MYSQL_COLLECTORS = {
    DatabaseKind.NEW_MYSQL: _collect_new_mysql,
    DatabaseKind.EXISTING_MYSQL: _collect_existing_mysql,
}


class PmailRecipe(Recipe):
    name = "pmail"
    title = "PMail"

    def __init__(self, options: DeployOptions, answers: PmailAnswers | None = None, *, runner=None):
        super().__init__(options, runner=runner)
        self.answers = answers or PmailAnswers()

    @property
    def image(self) -> str:
        if self.answers.mirror is None:
            return PMAIL_IMAGE
        return MIRROR_IMAGES[self.answers.mirror]

    def collect_configuration(self) -> None:
        a = self.answers
        if self.china_mirror and a.mirror is None:
            a.mirror = MirrorChoice.NJU
            if not self.options.assume_yes:
                a.mirror = interactive.select_enum("Registry mirror for the PMail image", MIRROR_TITLES)
        if a.domain:
            a.domain = domain(a.domain)
        else:
            a.domain = interactive.prompt_valid("Mail domain (e.g. example.com)", domain)
        if not a.web_domain:
            a.web_domain = interactive.prompt_valid("Webmail domain", domain, default=f"mail.{a.domain}")
        if not a.ssl_email:
            a.ssl_email = interactive.prompt_valid("Email for SSL certificate requests", email)
        if a.database is None:
            a.database = DatabaseKind.SQLITE
            if not self.options.assume_yes:
                a.database = interactive.select_enum("Database", DATABASE_TITLES)
        collector = MYSQL_COLLECTORS.get(a.database)
        if collector is not None and a.mysql is None:
            a.mysql = collector()
        console.ok(f"Image: {self.image}, database: {a.database.value}")

    def generate_files(self) -> None:
        self.create_work_dir()
        for sub in ("config", "plugins"):
            (self.work_dir / sub).mkdir(exist_ok=True)
        config_path = self.work_dir / "config" / "config.json"
        config_path.write_text(json.dumps(build_config(self.answers), indent=2) + "\n", encoding="utf-8")
        config_path.chmod(0o600)
        console.ok(f"Wrote {config_path}")
        self.write_stack(build_compose(self.answers, self.image))

    def start_services(self) -> None:
        try:
            super().start_services()
        except Exception:
            if self.china_mirror:
                console.warn("If the image pull failed, re-run and pick another registry mirror.")
            raise

    def summary(self) -> None:
        ip = self.display_ip()
        ports = ",".join(str(p) for p in MAIL_PORTS)
        console.rule("[bold green]PMail is running[/]")
        console.print("[bold]1. Firewall[/]")
        console.print(f"   Open TCP ports {ports}. With ufw:")
        console.hint(f"ufw allow {ports}/tcp")
        console.print("[bold]2. Web installer and DNS[/]")
        console.print(f"   Open http://{ip} to create the admin account.")
        console.print("   The installer lists the A, MX, SPF and DKIM records to add at your DNS provider.")
        console.print("[bold red]3. Reverse DNS (PTR)[/]")
        console.print("   In your server provider's console (not the DNS provider) set:")
        console.print(f"   IP {ip} -> {self.answers.web_domain}")
        console.print("[bold]4. Deliverability[/]")
        console.print("   New TLDs (.top, .xyz, .icu) score lower; plain-text mail avoids HTML_OBFUSCATE hits.")
        self.print_management()
