"""Error types raised by the tariff engine."""


class TariffEngineError(Exception):
    """Base class for tariff engine errors."""


class ClassificationNotFoundError(TariffEngineError, LookupError):
    """No classification exists for a code after every fallback was tried."""

    def __init__(self, code: str, attempted: list[str] | None = None):
        self.code = code
        self.attempted = list(attempted or [])
        message = f"classification not found for code {code}"
        if self.attempted:
            message += f" (tried: {', '.join(self.attempted)})"
        super().__init__(message)


class ClassificationServiceError(TariffEngineError):
    """The remote classification service failed with something other than a 404."""

    def __init__(self, path: str, status_code: int | None = None, detail: str = ""):
        self.path = path
        self.status_code = status_code
        super().__init__(
            f"classification service error for {path}"
            + (f" (HTTP {status_code})" if status_code else "")
            + (f": {detail}" if detail else "")
        )


class ImportBatchNotFoundError(TariffEngineError, LookupError):
    def __init__(self, batch_id):
        self.batch_id = batch_id
        super().__init__(f"import batch not found: {batch_id}")


class CargoItemNotFoundError(TariffEngineError, LookupError):
    def __init__(self, item_id):
        self.item_id = item_id
        super().__init__("product not found")


class ImportValidationError(TariffEngineError, ValueError):
    """A required import field is missing or invalid."""
