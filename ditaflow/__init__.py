"""ditaflow: run DITA-OT and turn its output into structured results."""

__version__ = "0.1.0"
