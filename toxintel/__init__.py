"""
Toxic Intelligence - Chat Toxicity & Relationship Risk Analyzer

Parses free-form "Name: message" chat exports, scores every message for
toxicity and sentiment with an external LLM, and folds the scores into
conversation summaries with a coarse breakup-risk indicator.
"""

__version__ = "1.0.0"
__author__ = "Toxic Intelligence Team"

from . import config
from . import models
from . import parser
from . import normalizer
from . import analysis_client
from . import aggregator
from . import storage
from . import pipeline

__all__ = [
    "config",
    "models",
    "parser",
    "normalizer",
    "analysis_client",
    "aggregator",
    "storage",
    "pipeline",
]
