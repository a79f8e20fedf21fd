"""httpdoc errors - exceptions raised outside the lenient parse/resolve core."""


class HttpDocError(Exception):
    """Base class for httpdoc errors."""


class EnvironmentFileError(HttpDocError):
    """An environment file exists but cannot be read as a JSON object."""


class BodyFileNotFoundError(HttpDocError):
    """A ``< path`` request body points at a file that does not exist."""

    def __init__(self, path):
        super().__init__(f"Body file not found: {path}")
        self.path = path


class CircularDependencyError(HttpDocError):
    """Requests reference each other's responses in a cycle."""

    def __init__(self, chain: list[str]):
        super().__init__(f"Circular dependency: {' → '.join(chain)}")
        self.chain = chain
