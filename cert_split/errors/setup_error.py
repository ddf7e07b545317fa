from pathlib import Path


class SetupError(RuntimeError):
    path: Path
    msg: str
    
    def __init__(
        self,
        path: Path,
        msg: str,
        *,
        cause: BaseException | None = None
    ) -> None:
        self.path = path
        self.msg = msg
        self.cause = cause
        super().__init__(f"{msg} '{path}'{f': {cause}' if cause else ''}")


class WatchSetupError(SetupError):
    pass


class WatchTransientError(Exception):
    pass
