from typing import Sequence


class AcmeClientError(Exception):
    domain: str
    cmd: Sequence[str]
    return_code: int
    output: str
    
    def __init__(
        self,
        domain: str,
        *,
        cmd: Sequence[str],
        return_code: int,
        output: str
    ) -> None:
        self.domain = domain
        self.return_code = return_code
        self.cmd = cmd
        self.output = output
        super().__init__(
            f"ACME client failed while processing certificate for '{domain}' "
            f"(return_code={return_code}, cmd={' '.join(cmd)}): {output.strip()}"
        )
