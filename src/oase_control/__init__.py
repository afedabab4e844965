"""Local control engine for OASE FM-Master EGC pond controllers."""

__version__ = "0.1.0"
