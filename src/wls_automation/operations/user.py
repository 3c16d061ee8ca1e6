from __future__ import annotations

import grp
import logging
import pwd
from dataclasses import dataclass
from typing import Any, Optional

from .base import Operation
from ..executors import Executor
from ..templating import to_bool
from ..types import ActionResult, HostConfig

logger = logging.getLogger(__name__)

UPDATE_PASSWORD_MODES = {"on_create", "always"}


@dataclass
class UserInfo:
    name: str
    shell: str
    home: str
    group: str
    groups: frozenset[str] = frozenset()


class UserManager:
    def get(self, username: str) -> UserInfo | None:
        try:
            entry = pwd.getpwnam(username)
        except KeyError:
            return None
        try:
            primary = grp.getgrgid(entry.pw_gid).gr_name
        except KeyError:
            primary = str(entry.pw_gid)
        groups = frozenset(g.gr_name for g in grp.getgrall() if username in g.gr_mem)
        return UserInfo(name=entry.pw_name, shell=entry.pw_shell, home=entry.pw_dir, group=primary, groups=groups)

    def add(
        self,
        executor: Executor,
        name: str,
        *,
        group: str | None,
        groups: list[str],
        home: str | None,
        shell: str | None,
        system: bool,
        create_home: bool,
        comment: str | None,
        password_hash: str | None,
    ) -> None:
        cmd = ["useradd"]
        if group:
            cmd += ["--gid", group]
        if groups:
            cmd += ["--groups", ",".join(groups)]
        if home:
            cmd += ["--home-dir", home]
        if shell:
            cmd += ["--shell", shell]
        cmd.append("--create-home" if create_home else "--no-create-home")
        if system:
            cmd.append("--system")
        if comment:
            cmd += ["--comment", comment]
        if password_hash:
            cmd += ["--password", password_hash]
        cmd.append(name)
        executor.run(cmd)

    def modify(self, executor: Executor, name: str, *, flags: list[str]) -> None:
        executor.run(["usermod", *flags, name])

    def delete(self, executor: Executor, name: str, *, remove_home: bool) -> None:
        cmd = ["userdel"]
        if remove_home:
            cmd.append("--remove")
        cmd.append(name)
        executor.run(cmd)

    def password_hash(self, executor: Executor, name: str) -> str | None:
        result = executor.run(["getent", "shadow", name], check=False, mutable=False)
        if result.returncode != 0:
            return None
        parts = result.stdout.strip().split(":")
        if len(parts) < 2:
            return None
        return parts[1]

    def set_password(self, executor: Executor, name: str, password_hash: str) -> None:
        executor.run(["chpasswd", "--encrypted"], input=f"{name}:{password_hash}\n")

    def hash_password(self, executor: Executor, plaintext: str, *, salt: str | None = None) -> str:
        """SHA-512 crypt hash, as ``/etc/shadow`` stores it."""
        cmd = ["openssl", "passwd", "-6"]
        if salt:
            cmd += ["-salt", salt]
        cmd.append("-stdin")
        result = executor.run(cmd, mutable=False, input=plaintext + "\n")
        return result.stdout.strip()


class UserOperation(Operation):
    """Ensure a user account exists with the requested group, home and password."""

    action = "user"

    def __init__(self, spec: dict[str, Any]):
        super().__init__(spec)
        self.name = self._require(spec, "name", "user")
        self.state = self._parse_state(spec, "user")
        self.group = self._optional_str(spec.get("group"))
        raw_groups = spec.get("groups") or []
        if isinstance(raw_groups, str):
            raw_groups = [g.strip() for g in raw_groups.split(",") if g.strip()]
        self.groups = [str(g) for g in raw_groups]
        self.home = self._optional_str(spec.get("home"))
        self.shell = self._optional_str(spec.get("shell"))
        self.comment = self._optional_str(spec.get("comment"))
        self.system = to_bool(spec.get("system", False))
        self.create_home = to_bool(spec.get("create_home", spec.get("createhome", True)))
        self.remove_home = to_bool(spec.get("remove_home", False))
        self.password = self._optional_str(spec.get("password"))
        self.password_hash = self._optional_str(spec.get("password_hash"))
        if self.password and self.password_hash:
            raise ValueError("user operation accepts password or password_hash, not both")
        self.update_password = str(spec.get("update_password", "on_create"))
        if self.update_password not in UPDATE_PASSWORD_MODES:
            raise ValueError("user operation update_password must be 'on_create' or 'always'")
        self.manager = UserManager()

    def apply(self, host: HostConfig, executor: Executor) -> ActionResult:
        info = self.manager.get(self.name)
        changes: list[str] = []

        if self.state == "absent":
            if info:
                logger.debug("Removing user %s", self.name)
                self.manager.delete(executor, self.name, remove_home=self.remove_home)
                changes.append("removed")
        elif not info:
            logger.debug("Creating user %s", self.name)
            self.manager.add(
                executor,
                self.name,
                group=self.group,
                groups=self.groups,
                home=self.home,
                shell=self.shell,
                system=self.system,
                create_home=self.create_home,
                comment=self.comment,
                password_hash=self._desired_hash(executor, None),
            )
            changes.append("created")
        else:
            changes.extend(self._reconcile(info, executor))

        detail = ", ".join(changes) if changes else "noop"
        return self.result(host, changed=bool(changes), details=detail)

    def _reconcile(self, info: UserInfo, executor: Executor) -> list[str]:
        flags: list[str] = []
        changes: list[str] = []
        if self.group and info.group != self.group:
            flags += ["--gid", self.group]
            changes.append("group")
        missing = [g for g in self.groups if g not in info.groups]
        if missing:
            flags += ["--append", "--groups", ",".join(missing)]
            changes.append("groups")
        if self.home and info.home != self.home:
            flags += ["--home", self.home]
            changes.append("home")
        if self.shell and info.shell != self.shell:
            flags += ["--shell", self.shell]
            changes.append("shell")
        if flags:
            logger.debug("Updating %s for %s", ",".join(changes), self.name)
            self.manager.modify(executor, self.name, flags=flags)

        if self.update_password == "always" and (self.password or self.password_hash):
            current = self.manager.password_hash(executor, self.name)
            desired = self._desired_hash(executor, current)
            if desired and desired != current:
                logger.debug("Updating password for %s", self.name)
                self.manager.set_password(executor, self.name, desired)
                changes.append("password")
        return changes

    def _desired_hash(self, executor: Executor, current: Optional[str]) -> Optional[str]:
        if self.password_hash:
            return self.password_hash
        if not self.password:
            return None
        # Reuse the stored salt so an unchanged password hashes identically.
        salt = _sha512_salt(current)
        return self.manager.hash_password(executor, self.password, salt=salt)


def _sha512_salt(stored: Optional[str]) -> Optional[str]:
    if not stored or not stored.startswith("$6$"):
        return None
    parts = stored.split("$")
    if len(parts) < 4:
        return None
    salt = parts[2]
    if salt.startswith("rounds="):
        return None
    return salt
