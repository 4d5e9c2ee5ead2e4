#!/usr/bin/env python3
"""
Development startup script for the MDR/XDR surveillance backend.
NOTE: Local development helper with roster validation
"""
import os
import sys
import subprocess

from xdr_backend.config import load_settings
from xdr_backend.services.roster_loader import load_patients_csv


def check_roster() -> bool:
    """Validate the configured patient roster before the server starts."""
    settings = load_settings()
    if not settings.patient_roster_csv:
        print("No PATIENT_ROSTER_CSV set, using demo ward data only")
        return True
    try:
        patients = load_patients_csv(settings.patient_roster_csv)
        print(f"Roster OK: {len(patients)} patients in {settings.patient_roster_csv}")
        return True
    except Exception as e:
        print(f"Roster check failed: {e}")
        return False


def main():
    """Start development server after checking reference data."""
    print("MDR/XDR Surveillance - Development Server")
    print("=" * 50)

    # Set development environment
    os.environ["ENVIRONMENT"] = "development"
    os.environ.setdefault("COUNTDOWN_INTERVAL_SECONDS", "1")

    print("Checking patient roster...")
    if not check_roster():
        print("Roster validation failed. Please fix the CSV file.")
        sys.exit(1)

    print("\nStarting FastAPI development server...")
    print("Server will be available at: http://127.0.0.1:8000")
    print("API documentation: http://127.0.0.1:8000/docs")
    print("Press Ctrl+C to stop the server")
    print("-" * 50)

    try:
        # Start FastAPI server with hot reload
        subprocess.run([
            "uvicorn",
            "xdr_backend.main:app",
            "--host", "127.0.0.1",
            "--port", "8000",
            "--reload",
            "--log-level", "info"
        ])
    except KeyboardInterrupt:
        print("\nServer stopped by user")
    except FileNotFoundError:
        print("\nuvicorn not found. Please install requirements:")
        print("pip install -e .")
        sys.exit(1)


if __name__ == "__main__":
    main()
