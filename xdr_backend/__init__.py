"""
MDR/XDR Surveillance Backend
Risk scoring, CBNAAT test lifecycle and alert monitoring for hospital TB surveillance.
NOTE: All clinical state is in-memory and lives for the lifetime of the process
"""

__version__ = "1.0.0"
__author__ = "MDR/XDR Surveillance Team"
__description__ = "Hospital MDR/XDR TB surveillance engine with FastAPI"
