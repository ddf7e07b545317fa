import logging
import subprocess
from dataclasses import dataclass
from cert_split.domain.bundle import SplitResult
from cert_split.utils import run_cmd, safe_str

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class PostHook:
    cmd: str
    timeout: int = 60

    def run(self, result: SplitResult) -> bool:
        """Run the hook after a successful split. Failures are logged, not raised."""
        try:
            proc = run_cmd(self.cmd, shell=True, timeout=self.timeout)
        except subprocess.TimeoutExpired:
            log.error(f"Post-hook timed out after {self.timeout}s (cmd={self.cmd!r}, bundle='{result.bundle}')")
            return False
        except OSError as e:
            log.error(f"Failed to run post-hook (cmd={self.cmd!r}): {e}")
            return False

        if proc.returncode != 0:
            log.error(
                f"Post-hook failed after split of '{result.bundle}' "
                f"(return_code={proc.returncode}, cmd={self.cmd!r}, stderr={safe_str(proc.stderr.strip())})"
            )
            return False

        log.info(f"Post-hook finished (cmd={self.cmd!r})")
        return True
