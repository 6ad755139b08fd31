"""
Knowledge Module
================

Learning corpus of answered questions: similarity search, the auto-answer
gate, feedback-driven confidence and deduplication.
"""
