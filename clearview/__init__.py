"""ClearView: batched, fail-open content classification client."""

from clearview.client import ClassificationClient
from clearview.models import ClassificationResult, Label

__all__ = ["ClassificationClient", "ClassificationResult", "Label"]

__version__ = "1.0.0"
