"""Single-provider appointment booking engine"""

__version__ = "1.0.0"
