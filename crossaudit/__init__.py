"""crossaudit - cross-repository static audit and CI gate."""

__version__ = "0.4.0"
