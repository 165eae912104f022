"""
Custom exception classes for the CLI interface.

Each exception carries the process exit code the CLI terminates with.
"""


class CLIError(Exception):
    """Base exception for CLI-related errors."""

    def __init__(self, message: str, exit_code: int = 1):
        super().__init__(message)
        self.exit_code = exit_code


class FileNotFoundError(CLIError):
    """Raised when a required file is not found."""

    def __init__(self, file_path: str):
        super().__init__(f"File not found: {file_path}", exit_code=3)


class ConfigurationError(CLIError):
    """Raised when configuration is invalid or missing."""

    def __init__(self, message: str):
        super().__init__(f"Configuration Error: {message}", exit_code=5)


class ProcessingError(CLIError):
    """Raised when invoice processing fails."""

    def __init__(self, message: str):
        super().__init__(f"Processing Error: {message}", exit_code=6)
