"""Process supervisor: a daemon that runs programs from a TOML file and a Unix-socket control shell."""

__version__ = "0.1.0"