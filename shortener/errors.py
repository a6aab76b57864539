class ShortenerError(ValueError):
    """Base class for rejected shortening requests."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class InvalidUrl(ShortenerError):
    def __init__(self, message: str = "Please enter a valid URL (e.g., https://example.com)") -> None:
        super().__init__(message)


class InvalidValidityPeriod(ShortenerError):
    def __init__(self, message: str = "Validity period must be between 1 and 10080 minutes (1 week)") -> None:
        super().__init__(message)


class InvalidShortCode(ShortenerError):
    def __init__(self, message: str = "Short code must be 3-10 alphanumeric characters only") -> None:
        super().__init__(message)


class ShortCodeTaken(ShortenerError):
    status_code = 409

    def __init__(self, message: str = "This short code is already taken. Please choose a different one.") -> None:
        super().__init__(message)


class QuotaExceeded(ShortenerError):
    status_code = 429

    def __init__(self, max_urls: int) -> None:
        super().__init__(f"Maximum of {max_urls} URLs allowed")
        self.max_urls = max_urls


class CodeGenerationFailed(ShortenerError):
    status_code = 500

    def __init__(self, attempts: int) -> None:
        super().__init__(f"Failed to generate unique code after {attempts} attempts. Try again.")
        self.attempts = attempts
