"""
Wrapper around the irestore helper.

irestore reads encrypted iOS backups: it dumps the decrypted keychain to
JSON, restores backup domains to disk and re-encrypts an edited keychain
dump. Password-protected backups make it prompt on the terminal, so in that
case it is driven through `expect`.
"""

import asyncio
import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Optional

from errors import BadPasswordError, HelperError, HelperTimeoutError

logger = logging.getLogger(__name__)

PASSWORD_ENV = "IRESTORE_PASSWORD"

# Exit codes produced by the expect script below
EXIT_BAD_PASSWORD = 1
EXIT_TIMEOUT = 2

EXPECT_SCRIPT = """
set timeout {timeout}
spawn {command}
expect {{
  "Backup Password: " {{
    send -- "$env({password_env})\\r"
    exp_continue
  }}
  "Bad password" {{
    exit {bad_password}
  }}
  "irestore done." {{
    exit 0
  }}
  eof {{
    exit 0
  }}
  timeout {{
    exit {timeout_code}
  }}
}}
"""


def tcl_quote(arg: str) -> str:
    """Quote an argument for use as a single word in a Tcl command."""
    escaped = arg
    for char in ("\\", '"', "$", "[", "]"):
        escaped = escaped.replace(char, "\\" + char)
    return f'"{escaped}"'


def find_irestore_bin() -> str:
    """Locate the irestore binary: PATH, npm global prefix, then the bare name."""
    on_path = shutil.which("irestore")
    if on_path:
        return on_path

    try:
        result = subprocess.run(
            ["npm", "prefix", "-g"],
            capture_output=True,
            text=True,
            timeout=30,
        )
        if result.returncode == 0:
            candidate = Path(result.stdout.strip()) / "bin" / "irestore"
            if candidate.exists():
                return str(candidate)
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug(f"npm prefix lookup failed: {e}")

    return "irestore"


class IRestore:
    """Runs irestore commands against one backup."""

    def __init__(
        self,
        backup_path: str,
        password: Optional[str] = None,
        binary: Optional[str] = None,
        timeout: int = 120,
    ):
        """
        Initialize the wrapper.

        Args:
            backup_path: Path to the backup directory
            password: Backup password; None for unencrypted backups
            binary: Explicit irestore binary, skips the lookup
            timeout: Seconds expect waits for irestore output
        """
        self.backup_path = backup_path
        self.password = password
        self.binary = binary
        self.timeout = timeout

    def _expect_script(self, command: list[str]) -> str:
        return EXPECT_SCRIPT.format(
            timeout=self.timeout,
            command=" ".join(tcl_quote(arg) for arg in command),
            password_env=PASSWORD_ENV,
            bad_password=EXIT_BAD_PASSWORD,
            timeout_code=EXIT_TIMEOUT,
        )

    async def _spawn(self, argv: list[str], env: dict[str, str]) -> tuple[int, str, str]:
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                env=env,
            )
        except OSError as e:
            raise HelperError(f"Could not start {argv[0]}: {e}") from e
        stdout, stderr = await process.communicate()
        return process.returncode, stdout.decode(errors="replace"), stderr.decode(errors="replace")

    async def _run_with_expect(self, command: list[str]) -> str:
        env = dict(os.environ)
        env[PASSWORD_ENV] = self.password
        code, stdout, stderr = await self._spawn(["expect", "-c", self._expect_script(command)], env)
        if code == EXIT_BAD_PASSWORD:
            raise BadPasswordError("Bad password.")
        if code == EXIT_TIMEOUT:
            raise HelperTimeoutError("Timeout waiting for irestore.")
        if code != 0:
            raise HelperError(f"irestore failed with code {code}: {stderr or stdout}", code)
        return stdout

    async def _run_without_password(self, command: list[str]) -> str:
        code, stdout, stderr = await self._spawn(command, dict(os.environ))
        if code != 0:
            raise HelperError(f"irestore failed with code {code}: {stderr or stdout}", code)
        return stdout

    async def run_command(self, args: list[str]) -> str:
        """Run `irestore <backup> <args...>` and return its stdout."""
        if self.binary is None:
            # The lookup may shell out to npm; keep it off the event loop
            loop = asyncio.get_running_loop()
            self.binary = await loop.run_in_executor(None, find_irestore_bin)
        command = [self.binary, self.backup_path, *args]
        logger.info(f"Running irestore {' '.join(args)}")

        if self.password:
            return await self._run_with_expect(command)
        return await self._run_without_password(command)

    async def restore(self, domain: str, dest_path: Path) -> str:
        return await self.run_command(["restore", domain, str(dest_path)])

    async def dump_keys(self, output_file: Path) -> str:
        return await self.run_command(["dumpkeys", str(output_file)])

    async def encrypt_keys(self, input_file: Path, output_file: Path) -> str:
        return await self.run_command(["encryptkeys", str(input_file), str(output_file)])
