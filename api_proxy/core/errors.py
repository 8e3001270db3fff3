class ConfigError(Exception):
    """Raised when startup configuration is missing or malformed.

    Fatal: the process must not start serving traffic after this.
    """
