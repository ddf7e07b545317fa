from pathlib import Path


class SplitError(Exception):
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


class ReadError(SplitError):
    def __init__(self, path: Path, *, cause: BaseException | None = None) -> None:
        super().__init__(path, "Failed to read certificate bundle", cause=cause)


class WriteError(SplitError):
    def __init__(self, path: Path, *, cause: BaseException | None = None) -> None:
        super().__init__(path, "Failed to write artifact", cause=cause)


class MalformedBundleError(SplitError):
    line_no: int | None
    
    def __init__(self, path: Path, reason: str, *, line_no: int | None = None) -> None:
        self.line_no = line_no
        super().__init__(path, f"Malformed certificate bundle ({reason}{f' at line {line_no}' if line_no else ''})")
