"""Exception hierarchy shared by the engine, the git client and the settings layer."""


class VaultBackupError(Exception):
    """Base class for every error raised by Vault Backup."""


class SetupError(VaultBackupError):
    """The working directory cannot be backed up (no repository, no remote).

    Fatal to activation: reported once, no further operations are attempted.
    """


class OperationError(VaultBackupError, RuntimeError):
    """A git operation (status, add, commit, push, pull, checkout) failed.

    Non-fatal: the current cycle aborts and the next trigger may retry.
    """


class ValidationError(VaultBackupError, ValueError):
    """A configuration value was rejected; the previous value is kept."""
