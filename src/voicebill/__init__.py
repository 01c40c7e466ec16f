"""
Voice Billing → Client Resolution → Document Transform

Resolves spoken, possibly mis-transcribed client names against a client
directory and derives new billing documents (convert, clone, merge) from
existing ones, presenting ranked alternatives instead of guessing.
"""

__version__ = "0.1.0"
