"""
Form filling package for the PDF form filler backend.

This module bundles reusable utilities for:
  - parsing CSV files, free text and filled PDFs into data rows
  - mapping column names onto human readable field descriptions
  - filling PDF templates through the Datalab API and storing the results
"""

from .config import Settings
from .errors import FormFillError
from .service import FormFillingService, IncomingFile

__all__ = ["FormFillingService", "FormFillError", "IncomingFile", "Settings"]
