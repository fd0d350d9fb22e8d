"""
FinSuggest - Version and metadata
"""

__version__ = "1.0.0"
__author__ = "FinSuggest Contributors"
__license__ = "MIT"
__description__ = (
    "Resilient AI/rule-based financial transaction suggestions from email attachments"
)
