"""fmadmin: profile view resolution and live synchronization for the agency admin console."""

__version__ = "0.1.0"
