"""Single-prompt sudo session shared by every privileged operation.

The password is read once, checked with ``sudo -k -l`` and then fed to
``sudo -v`` before each privileged call, so that long builds never stop to
re-prompt when sudo's timestamp expires. The secret lives only in memory.
"""

from __future__ import annotations

import getpass
import os
import pwd
import signal
import subprocess
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from archzfs.errors import AuthError, IdentityError, PromptTimeoutError
from archzfs.process import ErrorFactory, run_command

PROMPT_TIMEOUT_SECONDS = 60
VALIDATION_TIMEOUT_SECONDS = 5

SecretReader = Callable[[str], str]


@dataclass(slots=True)
class PrivilegeSession:
    user: str
    uid: int
    gid: int
    secret: str = field(repr=False)

    @property
    def owner(self) -> str:
        return f"{self.uid}:{self.gid}"

    def refresh(self) -> None:
        """Extend sudo's credential cache. Call right before privileged work."""
        run_command(
            ["sudo", "-S", "-p", "", "-v"],
            error=AuthError,
            message="Unable to refresh sudo credentials.",
            hint="The password was accepted earlier; check whether sudo policy changed.",
            operation="refresh",
            input=f"{self.secret}\n",
        )

    def run(
        self,
        argv: Sequence[str | Path],
        *,
        error: ErrorFactory,
        message: str,
        operation: str,
        hint: str | None = None,
        cwd: Path | None = None,
        capture: bool = True,
    ) -> subprocess.CompletedProcess[str]:
        """Refresh the credential, then run *argv* through ``sudo``."""
        self.refresh()
        return run_command(
            ["sudo", "--", *argv],
            error=error,
            message=message,
            operation=operation,
            hint=hint,
            cwd=cwd,
            capture=capture,
        )


def ensure_unprivileged() -> None:
    if os.geteuid() == 0:
        raise IdentityError(
            "Refusing to run as root.",
            hint="Run as a regular user with sudo privileges; elevation happens per operation.",
        )


def current_user() -> str:
    return pwd.getpwuid(os.getuid()).pw_name


def prompt_secret(
    user: str,
    *,
    timeout: int = PROMPT_TIMEOUT_SECONDS,
    reader: SecretReader = getpass.getpass,
) -> str:
    """Read the password without echo, giving up after *timeout* seconds."""

    def _expired(signum: int, frame: object) -> None:
        raise PromptTimeoutError(
            "Timeout reached for password entry.",
            context={"timeout": f"{timeout}s"},
        )

    previous = signal.signal(signal.SIGALRM, _expired)
    signal.alarm(timeout)
    try:
        return reader(f"Enter password for {user} (will not be echoed): ")
    except EOFError as exc:
        raise AuthError("No password was entered.") from exc
    finally:
        signal.alarm(0)
        signal.signal(signal.SIGALRM, previous)


def validate(secret: str, *, user: str | None = None) -> PrivilegeSession:
    """Check that *secret* grants sudo rights and return a primed session.

    A wrong password, missing sudo rights and a hung validation all surface
    as the same AuthError; sudo's exit status does not tell them apart.
    """
    run_command(
        ["sudo", "-k", "-S", "-p", "", "-l"],
        error=AuthError,
        message="Either the password is wrong or the user has no sudo privileges.",
        hint="Re-run and enter the password of a user listed in sudoers.",
        operation="validate",
        input=f"{secret}\n",
        timeout=VALIDATION_TIMEOUT_SECONDS,
    )

    session = PrivilegeSession(
        user=user or current_user(),
        uid=os.getuid(),
        gid=os.getgid(),
        secret=secret,
    )
    session.refresh()
    return session
