"""sandterm - browser terminal bridge for sandboxed command execution"""

__version__ = "0.1.0"
